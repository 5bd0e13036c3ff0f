"""
cloudbrowser - An interactive terminal browser for OVHcloud Public Cloud projects.

This package provides a keyboard-driven Textual interface for navigating cloud
resources (instances, Kubernetes clusters, databases, volumes, private
networks) and for creating instances through a multi-step wizard that rolls
back the resources it created when a later step fails.

Features:
  - Project selection with a persisted default project
  - Product tabs with instant filtering
  - Instance list enriched with image names and floating IPs
  - Create-instance wizard with inline SSH key and private network creation
  - Compensating cleanup of partially created resources
  - Auto-refresh of the instance list
  - Debug view of every API call (ring buffer)

Main Components:
  - model.py: Application state (Model, WizardData, Ledger)
  - messages.py / commands.py: Events in, effects out
  - update.py: The state machine (pure reducer)
  - wizard.py / provisioning.py: Instance creation and rollback
  - executor.py: Runs commands against the API
  - api.py: Signed HTTP client
  - render.py / textual_app.py: Presentation and runtime

Usage:
  python -m cloudbrowser [--debug]

Dependencies:
  - textual, rich, PyYAML, aiohttp
  - Python 3.10+
"""

import os
from pathlib import Path

__version__ = "0.1.0"


def get_log_path() -> str:
    """
    Get the log file path following the XDG Base Directory layout.

    Returns XDG_DATA_HOME/cloudbrowser/logs/cloudbrowser.log with fallback to /tmp.
    Creates directory if it doesn't exist.

    Returns:
        str: Absolute path to log file (/tmp/cloudbrowser.log as fallback)
    """
    xdg_data_home = os.environ.get('XDG_DATA_HOME')
    if not xdg_data_home:
        xdg_data_home = Path.home() / '.local' / 'share'
    else:
        xdg_data_home = Path(xdg_data_home)

    log_dir = xdg_data_home / 'cloudbrowser' / 'logs'

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return str(log_dir / 'cloudbrowser.log')
    except (PermissionError, OSError):
        return '/tmp/cloudbrowser.log'
