"""Launcher for global-logrotate.

Usage:
    python run.py -D -p /var/log/myapp
    python run.py --encrypt -D -p /var/log/secure
    python run.py --read /var/log/secure/old_logs/20250201/app.log.20250201.gz.enc
    python run.py --pass-gen
"""

import sys

from global_logrotate.cli.app import main

if __name__ == "__main__":
    sys.exit(main())
