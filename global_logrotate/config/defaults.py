"""Default paths, limits and format constants."""

import os

VERSION = "2.1.15"
PROG_NAME = "global-logrotate"

# System configuration: main file plus sorted *.conf drop-ins
MAIN_CONFIG_FILE = "/etc/global-sys-utils/global.conf"
CONFIG_DROPIN_DIR = "/etc/global-sys-utils/global.conf.d"
ENCRYPTION_CONF_NAME = "encryption.conf"

DEFAULT_LOG_DIR = "/var/log/apps"
DEFAULT_PATTERN = "*.log"
DEFAULT_JOBS = 4
DEFAULT_LOG_FILE = "/var/log/global-sys-utils/global-logrotate.log"
DEFAULT_LOG_LEVEL = "info"
OLD_LOGS_DIRNAME = "old_logs"

# Archive naming
ARCHIVE_DAY_FORMAT = "%Y%m%d"
DATE_ONLY_SUFFIX_FORMAT = "%Y%m%d"
FULL_SUFFIX_FORMAT = "%Y%m%dT%H:%M:%S"
GZ_EXT = ".gz"
ENC_EXT = ".enc"

ARCHIVE_DIR_MODE = 0o755
LOG_DIR_MODE = 0o755

# Per-user credentials
CREDENTIALS_RELPATH = os.path.join(".global-sys-utils", "config", "credentials.ini")
CREDENTIALS_DIR_MODE = 0o700
CREDENTIALS_FILE_MODE = 0o600
PASSWORD_ENV_VAR = "LOGROTATE_PASSWORD"
CREDENTIALS_KEYS = ("LOGROTATE_PASSWORD", "password")

# Password policy
MIN_PASSWORD_LENGTH = 8
GENERATED_PASSWORD_LENGTH = 24
PASSWORD_CHARSET = (
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*"
)

# Encrypted envelope: MAGIC(4) + SALT(32) + NONCE(12) + CIPHERTEXT
ENVELOPE_MAGIC = b"GLRE"
SALT_SIZE = 32
NONCE_SIZE = 12
KEY_SIZE = 32
GCM_TAG_SIZE = 16
KDF_ITERATIONS = 100_000

# Run log line layout
LOG_LINE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
