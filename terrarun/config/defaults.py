"""
Default settings for terrarun.

These are the default values used when no user configuration exists.
"""

DEFAULT_SETTINGS = {
    # Terraform binary (name on PATH or absolute path)
    "terraform_binary": "terraform",

    # Per-operation wall-clock timeout for a single attempt, in seconds
    "timeouts": {
        "init": 600,
        "plan": 1800,
        "apply": 3600,
        "destroy": 3600,
        "validate": 300,
        "show": 300,
        "state": 120,
        "workspace": 60,
    },

    # Additional attempts after the first one
    "retries": {
        "init": 3,
        "plan": 3,
        "apply": 3,
        "destroy": 3,
        "validate": 0,
        "show": 1,
        "state": 1,
        "workspace": 0,
    },

    # Linear back-off between attempts: min(max, retry * base)
    "backoff": {
        "base_seconds": 5,
        "max_seconds": 30,
    },

    # Value passed as -lock-timeout
    "lock_timeout": "0s",

    # State protection around apply/destroy
    "state": {
        "file_name": "terraform.tfstate",
        "backup_enabled": True,
        "rollback_on_failure": False,
    },

    # Extra regular expressions appended ahead of the built-in rules
    "classification": {
        "transient_patterns": [],
        "permanent_patterns": [],
    },

    # Environment variables added to every Terraform process
    "environment": {},

    # Workspace records older than this are reported as stale
    "workspace_stale_after_seconds": 86400,

    # Number of stderr lines quoted in failure messages
    "stderr_tail_lines": 20,

    "logging": {
        "level": "INFO",
        "file": False,
    },
}
