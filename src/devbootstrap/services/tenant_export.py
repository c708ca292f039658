"""Identity-tenant (Zitadel) export for devbootstrap."""

import json
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from devbootstrap.constants import PAT_MIN_LENGTH, ZITADEL_TOKEN_SCOPE
from devbootstrap.errors import ApplicationError, AuthFailed, TransportFailure
from devbootstrap.errors_catalog import actionable_error
from devbootstrap.models import (
    ExportResource,
    ResourceApplicationError,
    ResourceOutcome,
    ResourceSuccess,
    ResourceTransportError,
    TenantExportReport,
)

EXPORT_RESOURCES = (
    ExportResource(
        name="organization",
        method="GET",
        path="/management/v1/orgs/me",
        expected_shape=(("org", dict),),
    ),
    ExportResource(
        name="users",
        method="POST",
        path="/management/v1/users/_search",
        payload={"queries": []},
        expected_shape=(("result", list), ("details", dict)),
    ),
    ExportResource(
        name="projects",
        method="POST",
        path="/management/v1/projects/_search",
        payload={"queries": []},
        expected_shape=(("result", list), ("details", dict)),
    ),
)

SUCCESS_SUFFIX = ".json"
APPLICATION_ERROR_SUFFIX = "_error.json"
TRANSPORT_ERROR_SUFFIX = "_curl_error.txt"


class TenantExportService:
    """Exports organization, users and projects from a Zitadel tenant.

    Every resource request ends in exactly one of three outcomes: success,
    application error (a response arrived but is not usable) or transport
    error (no response at all). Only successes are written to the
    ``<resource>.json`` artifact.
    """

    def __init__(self, logger, console, requests_module=requests, timeout_seconds: float = 30.0):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.timeout_seconds = timeout_seconds

    def obtain_token(self, base_url: str, service_user: str, service_key: str) -> str:
        if len(service_key) > PAT_MIN_LENGTH:
            self.console.print("[blue]Using Personal Access Token for Zitadel authentication...[/blue]")
            self.logger.debug(
                "Personal access token: length=%s prefix=%s",
                len(service_key),
                service_key[:4],
            )
            return service_key

        self.console.print("[blue]Authenticating with Zitadel service account via OAuth...[/blue]")
        url = f"{base_url}/oauth/v2/token"
        try:
            response = self.requests.post(
                url,
                data={"grant_type": "client_credentials", "scope": ZITADEL_TOKEN_SCOPE},
                auth=(service_user, service_key),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout_seconds,
            )
        except self.requests.RequestException as exc:
            raise AuthFailed(actionable_error("auth_failed", url=base_url, detail=str(exc))) from exc

        if response.status_code != 200:
            raise AuthFailed(
                actionable_error(
                    "auth_failed",
                    url=base_url,
                    detail=f"HTTP {response.status_code}: {response.text.strip()}",
                )
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthFailed(
                actionable_error("auth_failed", url=base_url, detail="token response is not JSON")
            ) from exc

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise AuthFailed(
                actionable_error(
                    "auth_failed",
                    url=base_url,
                    detail=f"no access_token in response: {response.text.strip()}",
                )
            )

        self.logger.debug("Access token obtained: length=%s prefix=%s", len(token), token[:4])
        return token

    def _send(self, base_url: str, token: str, resource: ExportResource) -> ResourceSuccess:
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        try:
            response = self.requests.request(
                resource.method,
                f"{base_url}{resource.path}",
                headers=headers,
                json=resource.payload,
                timeout=self.timeout_seconds,
            )
        except self.requests.RequestException as exc:
            raise TransportFailure(f"{type(exc).__name__}: {exc}") from exc

        status = response.status_code
        body = response.content.decode("utf-8", errors="replace") if response.content else ""

        if not 200 <= status < 300:
            raise ApplicationError(f"HTTP {status}", status=status, body=body)
        if not body.strip():
            raise ApplicationError("empty response body", status=status, body=body)

        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise ApplicationError("response body is not JSON", status=status, body=body) from exc

        if not isinstance(payload, dict):
            raise ApplicationError("response body is not a JSON object", status=status, body=body)
        if "code" in payload and "message" in payload:
            raise ApplicationError(f"error envelope: {payload['message']}", status=status, body=body)
        shape_error = self._shape_error(resource, payload)
        if shape_error:
            raise ApplicationError(f"unexpected body shape, {shape_error}", status=status, body=body)

        return ResourceSuccess(name=resource.name, status=status, body=body)

    @staticmethod
    def _shape_error(resource: ExportResource, payload: Dict[str, Any]) -> Optional[str]:
        if not resource.expected_shape:
            return None
        keys = [key for key, _ in resource.expected_shape]
        if not any(key in payload for key in keys):
            return f"expected one of {', '.join(keys)}"
        for key, expected_type in resource.expected_shape:
            if key in payload and not isinstance(payload[key], expected_type):
                return f"'{key}' is {type(payload[key]).__name__}, expected {expected_type.__name__}"
        return None

    def fetch(self, base_url: str, token: str, resource: ExportResource) -> ResourceOutcome:
        self.console.print(f"[blue]Exporting {resource.name}...[/blue]")
        try:
            return self._send(base_url, token, resource)
        except TransportFailure as exc:
            return ResourceTransportError(name=resource.name, cause=str(exc))
        except ApplicationError as exc:
            return ResourceApplicationError(
                name=resource.name,
                status=exc.status or 0,
                body=exc.body,
                reason=str(exc),
            )

    def persist(self, outcome: ResourceOutcome, export_dir: str) -> str:
        if isinstance(outcome, ResourceSuccess):
            path = os.path.join(export_dir, f"{outcome.name}{SUCCESS_SUFFIX}")
            content = outcome.body
        elif isinstance(outcome, ResourceApplicationError):
            path = os.path.join(export_dir, f"{outcome.name}{APPLICATION_ERROR_SUFFIX}")
            content = outcome.body
            if not content.strip():
                content = json.dumps({"status": outcome.status, "reason": outcome.reason}, indent=2)
        elif isinstance(outcome, ResourceTransportError):
            path = os.path.join(export_dir, f"{outcome.name}{TRANSPORT_ERROR_SUFFIX}")
            content = f"{outcome.cause}\n"
        else:
            raise TypeError(f"Unknown export outcome: {outcome!r}")

        with open(path, "w", encoding="utf-8") as file_obj:
            file_obj.write(content)
        return path

    @staticmethod
    def create_export_dir(export_root: str) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        export_dir = os.path.join(export_root, f"zitadel_export_{timestamp}_{uuid.uuid4().hex[:6]}")
        os.makedirs(export_dir, exist_ok=False)
        return export_dir

    def export(
        self,
        base_url: str,
        service_user: str,
        service_key: str,
        export_root: str,
    ) -> TenantExportReport:
        base_url = base_url.rstrip("/")
        self.console.print(f"[blue]Exporting Zitadel data from {base_url}...[/blue]")
        token = self.obtain_token(base_url, service_user, service_key)

        os.makedirs(export_root, exist_ok=True)
        report = TenantExportReport(export_dir=self.create_export_dir(export_root))

        for resource in EXPORT_RESOURCES:
            outcome = self.fetch(base_url, token, resource)
            report.outcomes.append(outcome)
            report.artifacts[resource.name] = self.persist(outcome, report.export_dir)
            self._log_outcome(outcome, report.artifacts[resource.name])

        return report

    def _log_outcome(self, outcome: ResourceOutcome, artifact: str):
        if isinstance(outcome, ResourceSuccess):
            self.logger.info("Exported %s (HTTP %s) to %s", outcome.name, outcome.status, artifact)
        elif isinstance(outcome, ResourceApplicationError):
            self.logger.warning(
                "Export of %s failed (HTTP %s, %s); response saved to %s",
                outcome.name,
                outcome.status,
                outcome.reason,
                artifact,
            )
        else:
            self.logger.warning(
                "Export of %s failed: no response (%s); details saved to %s",
                outcome.name,
                outcome.cause,
                artifact,
            )

    @staticmethod
    def summarize(report: TenantExportReport) -> Dict[str, Optional[Any]]:
        """Organization name and user/project counts read from success artifacts."""
        summary: Dict[str, Optional[Any]] = {
            "organization": None,
            "users": None,
            "human_users": None,
            "projects": None,
        }
        bodies: Dict[str, Any] = {}
        for outcome in report.outcomes:
            if isinstance(outcome, ResourceSuccess):
                bodies[outcome.name] = json.loads(outcome.body)

        if "organization" in bodies:
            summary["organization"] = (bodies["organization"].get("org") or {}).get("name")
        if "users" in bodies:
            users = bodies["users"].get("result") or []
            summary["users"] = len(users)
            summary["human_users"] = sum(1 for user in users if isinstance(user, dict) and "human" in user)
        if "projects" in bodies:
            summary["projects"] = len(bodies["projects"].get("result") or [])
        return summary
