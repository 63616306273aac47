"""
Tests for the rbenv installer.
"""

import logging
from pathlib import Path

import pytest

from workstation_setup.errors import ProvisioningError
from workstation_setup.rbenv import RBENV_INIT, RbenvInstaller
from workstation_setup.steps import StepPolicy


def fake_clone(cmd):
    """Create the clone destination the way ``git clone`` would."""
    Path(cmd[-1]).mkdir(parents=True)


class RbenvHost:
    """Answers ``rbenv versions`` from the versions ``rbenv install`` built."""

    def __init__(self, fake_runner, installed=()):
        self.installed = list(installed)
        fake_runner.on("git", "clone", effect=fake_clone)
        fake_runner.on("rbenv", "versions", stdout=self.versions)
        fake_runner.on("rbenv", "install", effect=self.install)

    def versions(self) -> str:
        return "\n".join(self.installed) + "\n"

    def install(self, cmd):
        self.installed.append(cmd[-1])


@pytest.fixture
def rbenv(config, fake_runner) -> RbenvInstaller:
    return RbenvInstaller(config, fake_runner)


def make_rbenv_bin(config):
    config.rbenv_bin.parent.mkdir(parents=True, exist_ok=True)
    config.rbenv_bin.write_text("#!/bin/sh\n")


class TestBootstrap:
    def test_declared_policies(self):
        assert RbenvInstaller.BUILD_POLICY is StepPolicy.FATAL
        assert RbenvInstaller.GEM_POLICY is StepPolicy.WARN_ONLY

    def test_clones_rbenv_and_ruby_build(self, rbenv, fake_runner, config):
        RbenvHost(fake_runner)
        rbenv.bootstrap()
        assert fake_runner.find("git", "clone") == [
            ["git", "clone", config.rbenv_repo, str(config.rbenv_root)],
            ["git", "clone", config.ruby_build_repo, str(config.ruby_build_dir)],
        ]

    def test_existing_directories_are_not_cloned(self, rbenv, fake_runner, config, caplog):
        config.ruby_build_dir.mkdir(parents=True)
        with caplog.at_level(logging.INFO):
            rbenv.bootstrap()
        assert fake_runner.calls == []
        assert "rbenv is already installed" in caplog.text
        assert "ruby-build plugin is already installed" in caplog.text

    def test_clone_failure_is_fatal(self, rbenv, fake_runner):
        fake_runner.on("git", "clone", returncode=128)
        with pytest.raises(ProvisioningError) as exc:
            rbenv.bootstrap()
        assert exc.value.exit_code == 128
        assert len(fake_runner.find("git", "clone")) == 1


class TestShellProfiles:
    def test_adds_block_to_each_profile(self, rbenv, config):
        changed = rbenv.update_shell_profiles()
        assert changed == config.profile_files
        for profile in config.profile_files:
            text = profile.read_text()
            assert text.count(RBENV_INIT.begin_marker) == 1
            assert 'eval "$(rbenv init -)"' in text

    def test_rerun_changes_nothing_and_warns(self, rbenv, config, caplog):
        rbenv.update_shell_profiles()
        with caplog.at_level(logging.WARNING):
            assert rbenv.update_shell_profiles() == []
        assert "rbenv configuration already exists in shell profiles" in caplog.text
        for profile in config.profile_files:
            assert profile.read_text().count("rbenv init") == 1

    def test_profile_with_existing_rbenv_init_is_skipped(self, rbenv, config):
        profile = config.home / ".profile"
        profile.write_text('eval "$(rbenv init - bash)"\n')
        changed = rbenv.update_shell_profiles()
        assert profile not in changed
        assert profile.read_text() == 'eval "$(rbenv init - bash)"\n'

    def test_latin1_profile_is_updated_in_place(self, rbenv, config):
        profile = config.home / ".profile"
        profile.write_bytes(b"# r\xe9pertoire perso\nexport LANG=fr_FR\n")
        assert profile in rbenv.update_shell_profiles()
        data = profile.read_bytes()
        assert data.startswith(b"# r\xe9pertoire perso\nexport LANG=fr_FR\n")
        assert data.count(RBENV_INIT.begin_marker.encode()) == 1


class TestRubyVersions:
    def test_missing_rbenv_is_fatal(self, rbenv, fake_runner, config):
        with pytest.raises(ProvisioningError) as exc:
            rbenv.install_versions()
        assert str(config.rbenv_bin) in exc.value.message
        assert fake_runner.calls == []

    def test_builds_missing_versions_and_sets_global_once(self, rbenv, fake_runner, config):
        RbenvHost(fake_runner, installed=["2.6.10"])
        make_rbenv_bin(config)

        assert rbenv.install_versions() == ["3.3.5", "3.4.1"]

        assert [cmd[-1] for cmd in fake_runner.find("rbenv", "install")] == ["3.3.5", "3.4.1"]
        assert fake_runner.find("rbenv", "global") == [["rbenv", "global", "3.4.1"]]
        assert fake_runner.index("rbenv", "global") == len(fake_runner.calls) - 1

    def test_everything_installed_only_sets_global(self, rbenv, fake_runner, config, caplog):
        RbenvHost(fake_runner, installed=config.ruby_versions)
        make_rbenv_bin(config)

        with caplog.at_level(logging.INFO):
            assert rbenv.install_versions() == []
        assert not fake_runner.ran("rbenv", "install")
        assert "Ruby 3.3.5 is already installed" in caplog.text
        assert fake_runner.ran("rbenv", "global", "3.4.1")

    def test_gems_installed_for_each_built_version(self, rbenv, fake_runner, config):
        RbenvHost(fake_runner, installed=["2.6.10", "3.3.5"])
        make_rbenv_bin(config)
        rbenv.install_versions()

        gems = fake_runner.find("rbenv", "exec", "gem", "install")
        assert [cmd[4] for cmd in gems] == ["bundler", "rake"]
        for i, cmd in enumerate(fake_runner.commands()):
            if cmd[:2] == ["rbenv", "exec"]:
                assert fake_runner.envs[i]["RBENV_VERSION"] == "3.4.1"
        assert fake_runner.ran("rbenv", "rehash")

    def test_commands_carry_rbenv_environment(self, rbenv, fake_runner, config):
        RbenvHost(fake_runner)
        make_rbenv_bin(config)
        rbenv.install_versions()
        for cmd, env in zip(fake_runner.calls, fake_runner.envs):
            assert cmd[0] == str(config.rbenv_bin)
            assert env["RBENV_ROOT"] == str(config.rbenv_root)
            assert env["PATH"].startswith(str(config.rbenv_root / "bin"))

    def test_build_failure_is_fatal(self, rbenv, fake_runner, config):
        fake_runner.on("rbenv", "install", "-v", "3.3.5", returncode=1)
        RbenvHost(fake_runner)
        make_rbenv_bin(config)
        with pytest.raises(ProvisioningError) as exc:
            rbenv.install_versions()
        assert exc.value.message == "Failed to install Ruby 3.3.5"
        assert not fake_runner.ran("rbenv", "global")

    def test_gem_failure_only_warns(self, rbenv, fake_runner, config, caplog):
        fake_runner.on("rbenv", "exec", "gem", "install", "bundler", returncode=1)
        RbenvHost(fake_runner)
        make_rbenv_bin(config)
        with caplog.at_level(logging.WARNING):
            rbenv.install_versions()
        assert "Failed to install bundler for Ruby 2.6.10" in caplog.text
        assert fake_runner.ran("rbenv", "global", "3.4.1")


def test_full_install(rbenv, fake_runner, config):
    fake_runner.on(
        "git", "clone", config.rbenv_repo, effect=lambda cmd: make_rbenv_bin(config)
    )
    host = RbenvHost(fake_runner)

    assert rbenv.install() == config.ruby_versions
    assert host.installed == config.ruby_versions
    assert config.ruby_build_dir.is_dir()
