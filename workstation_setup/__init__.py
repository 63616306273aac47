"""
Debian Workstation Setup
------------------------

Unattended provisioning of a Debian/Ubuntu workstation for a regular user:
system update, build prerequisites, Google Chrome, Docker CE, rbenv with
pinned Ruby versions and a set of bash customizations.
"""

VERSION = "1.0.0"
APP_NAME = "Workstation Setup"
APP_SUBTITLE = "Debian/Ubuntu Workstation Provisioner"

LOGGER_NAME = "workstation_setup"
