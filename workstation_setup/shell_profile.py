"""
Marker-delimited configuration blocks in shell startup files.

Every block carries a key and a version tag::

    # >>> workstation-setup:rbenv v1 >>>
    ...
    # <<< workstation-setup:rbenv <<<

Applying a block that is already current is a no-op, an older version is
replaced in place, and a file already holding a hand-written equivalent
(a legacy marker) is left alone.
"""

import datetime
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Pattern, Tuple

from workstation_setup.log import get_logger

MARKER_PREFIX = "workstation-setup"

# Shell files may hold bytes in any encoding; undecodable ones round-trip unchanged
SHELL_FILE_ENCODING = {"encoding": "utf-8", "errors": "surrogateescape"}


class BlockState(Enum):
    ABSENT = "absent"
    CURRENT = "current"
    OUTDATED = "outdated"
    LEGACY = "legacy"


@dataclass(frozen=True)
class ManagedBlock:
    key: str
    body: str
    version: str = "1"
    legacy_markers: Tuple[str, ...] = ()

    @property
    def begin_marker(self) -> str:
        return f"# >>> {MARKER_PREFIX}:{self.key} v{self.version} >>>"

    @property
    def end_marker(self) -> str:
        return f"# <<< {MARKER_PREFIX}:{self.key} <<<"

    @property
    def pattern(self) -> Pattern[str]:
        key = re.escape(self.key)
        return re.compile(
            rf"^# >>> {MARKER_PREFIX}:{key} v(?P<version>\S+) >>>\n"
            rf".*?^# <<< {MARKER_PREFIX}:{key} <<<\n?",
            re.MULTILINE | re.DOTALL,
        )

    def render(self) -> str:
        body = self.body.strip("\n")
        return f"{self.begin_marker}\n{body}\n{self.end_marker}\n"


def block_state(text: str, block: ManagedBlock) -> BlockState:
    match = block.pattern.search(text)
    if match:
        if match.group("version") == block.version:
            return BlockState.CURRENT
        return BlockState.OUTDATED
    if any(marker in text for marker in block.legacy_markers):
        return BlockState.LEGACY
    return BlockState.ABSENT


def backup_file(file_path: Path) -> Optional[Path]:
    """
    Copy ``file_path`` to a timestamped sibling.

    Returns:
        Path to the backup file or None if there was nothing to back up
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        return None

    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    backup_path = file_path.with_name(f"{file_path.name}.backup.{timestamp}")
    shutil.copy2(file_path, backup_path)
    return backup_path


def apply_block(path: Path, block: ManagedBlock, backup: bool = False) -> bool:
    """
    Make sure ``path`` contains the current version of ``block``.

    Args:
        path: Shell startup file; created if missing
        block: Block to apply
        backup: Copy the file to a timestamped sibling before changing it

    Returns:
        True if the file was changed
    """
    logger = get_logger("shell")
    path = Path(path)
    text = path.read_text(**SHELL_FILE_ENCODING) if path.exists() else ""
    state = block_state(text, block)

    if state is BlockState.CURRENT:
        logger.debug(f"{block.key} block already current in {path}")
        return False
    if state is BlockState.LEGACY:
        logger.debug(f"{path} already holds {block.key} configuration")
        return False

    if backup:
        backup_path = backup_file(path)
        if backup_path:
            logger.info(f"Backed up {path} to {backup_path}")

    if state is BlockState.OUTDATED:
        new_text = block.pattern.sub(lambda _: block.render(), text, count=1)
    else:
        if text and not text.endswith("\n"):
            text += "\n"
        new_text = f"{text}\n{block.render()}" if text else block.render()

    path.write_text(new_text, **SHELL_FILE_ENCODING)
    return True


BASH_CUSTOMIZATIONS = ManagedBlock(
    key="bash-customizations",
    legacy_markers=("parse_git_branch() {",),
    body=r"""
##
## Add Git Branch Name
##
parse_git_branch() {
  git branch 2> /dev/null | sed -e '/^[^*]/d' -e 's/* \(.*\)/ (\1)/'
}

function ps1() {
  Cyan="\[\033[0;36m\]"
  Yellow="\[\033[0;33m\]"
  BrightRed="\[\033[0;33m\]"
  BrightMagenta="\[\033[0;95m\]"
  BrightGreen="\[\033[0;92m\]"
  Green="\[\033[0;32m\]"
  Magenta="\[\033[0;35m\]"
  White="\[\033[00m\]"
  PS1="$Cyan\u@\h $BrightGreen\w$BrightMagenta$(parse_git_branch) $Cyan$\n $Green└─> $White"
}

export PROMPT_COMMAND=ps1

if [ -f ~/.git-prompt.sh ]; then
  GIT_PS1_SHOWDIRTYSTATE=true
  GIT_PS1_SHOWSTASHSTATE=true
  GIT_PS1_SHOWUNTRACKEDFILES=true
  GIT_PS1_SHOWUPSTREAM="auto"
  GIT_PS1_HIDE_IF_PWD_IGNORED=true
  GIT_PS1_SHOWCOLORHINTS=true
  . ~/.git-prompt.sh
fi

##
## Set Title
##
function set_title() {
  PROMPT_COMMAND="echo -ne '\033]0;${PWD##*/}\007'"
}

##
## Git Macros
##
function git_add(){
  git add . && git commit -m "$*"
}

##
## Aliases
##
alias overide='sudo chown -R $USER:$USER .' # Overide permissions
alias gita='git_add'
alias dc='docker compose' # Docker Compose (Alias)
alias dce='docker compose exec' # Docker Compose Exec (Execute)
alias dcr='docker compose run --rm --no-deps' # Docker Compose Run (Run Remove No Dependencies)
alias title='set_title' # Set Title of Terminal
""",
)


class ShellCustomizer:
    """Add prompt, title, git macro and alias customizations to ~/.bashrc."""

    def __init__(self, bashrc: Path, block: ManagedBlock = BASH_CUSTOMIZATIONS):
        self.bashrc = Path(bashrc)
        self.block = block
        self.logger = get_logger("shell")

    def apply(self) -> bool:
        self.logger.info(f"Adding custom configurations to {self.bashrc.name}...")
        changed = apply_block(self.bashrc, self.block, backup=True)
        if changed:
            self.logger.info(f"Custom configurations added to {self.bashrc.name}")
        else:
            self.logger.info(f"Custom configurations already present in {self.bashrc.name}")
        return changed
