"""Actionable error catalog for the FabricX runtime."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "docker_unavailable": {
        "what": "Docker is not available: {reason}",
        "next": "Install Docker and make sure the daemon is running for the current user.",
    },
    "compose_unavailable": {
        "what": "Docker Compose is not available.",
        "next": "Install Docker Compose v2 (`docker compose`) or v1 (`docker-compose`) and try again.",
    },
    "command_not_found": {
        "what": "Required command not found: {command}",
        "next": "Install it and make sure it is on PATH.",
    },
    "network_not_found": {
        "what": "Network {network_id} not found.",
        "next": "Check the network ID returned by InitNetwork; networks do not survive a runtime restart.",
    },
    "crypto_generation_failed": {
        "what": "Crypto material generation failed during {step}.",
        "next": "Check that the image {image} can be pulled and inspect the tool output above.",
    },
    "package_id_not_found": {
        "what": "Installed chaincode package with label {label} was not found on {peer}.",
        "next": "Verify the install phase succeeded and that name and version match.",
    },
    "config_not_found": {
        "what": "Config file not found: {path}",
        "next": "Pass an existing YAML file with `--config` or create `.fabricx.yml`.",
    },
    "invalid_org_count": {
        "what": "Invalid organization count {count}.",
        "next": "Use a value between 1 and {maximum} (0 selects the default of 2).",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
