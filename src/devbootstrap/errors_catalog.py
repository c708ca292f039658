"""Actionable error catalog for devbootstrap."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "config_missing": {
        "what": "Configuration file not found: {path}",
        "next": "Copy setup.env.example to setup.env and fill in your details.",
    },
    "config_invalid": {
        "what": "Required variable(s) not set in {path}: {keys}",
        "next": "Add the missing values to the configuration file and run setup again.",
    },
    "uat_db_invalid": {
        "what": "Required UAT variable(s) not set in {path}: {keys}",
        "next": "Configure the UAT database settings to use BOOTSTRAP_MODE=uat.",
    },
    "tool_install_failed": {
        "what": "{tool} is still not available after installation.",
        "next": "Run `brew install {tool}` manually and inspect its output.",
    },
    "clone_failed": {
        "what": "Could not clone {name} from {url}.",
        "next": "Check your SSH key is registered on GitHub and that you can reach the remote.",
    },
    "docker_not_ready": {
        "what": "Docker did not become ready after {seconds} seconds.",
        "next": (
            "Open Docker Desktop, accept the service agreement and the privileged helper "
            "prompt, resolve any error it shows, then run setup again."
        ),
    },
    "postgres_not_ready": {
        "what": "PostgreSQL did not become ready after {seconds} seconds.",
        "next": "Inspect `docker compose logs postgres` in the backend directory.",
    },
    "dump_failed": {
        "what": "Failed to dump the UAT database {name} from {host}.",
        "next": "Check the UAT credentials and network access. Partial dump kept at {path}.",
    },
    "restore_fatal": {
        "what": "Could not prepare the local database: {detail}",
        "next": "The dump file is kept at {path}; re-apply it with psql once the database is reachable.",
    },
    "auth_failed": {
        "what": "Failed to authenticate with Zitadel at {url}: {detail}",
        "next": "Check UAT_ZITADEL_SERVICE_USER and UAT_ZITADEL_SERVICE_KEY in setup.env.",
    },
    "zitadel_manual_export": {
        "what": "No Zitadel service account credentials found. Manual export/import required.",
        "next": (
            "Export the organization from {url} (Organization > Export) and import it into "
            "{local_url} (Organization > Import), or set UAT_ZITADEL_SERVICE_USER and "
            "UAT_ZITADEL_SERVICE_KEY for automated export."
        ),
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
