"""Per-run tenant provisioning: user, quota, org, space and security group."""

from __future__ import annotations

import json
import logging as py_logging
import os
import re
import secrets
import tempfile
from collections.abc import Callable
from contextlib import suppress
from datetime import datetime
from pathlib import Path

from typing_extensions import TypedDict

from redissmoke.cf.cli import CfCli, UserContext
from redissmoke.config import SmokeTestConfig
from redissmoke.errors import SmokeTestError
from redissmoke.logging import mask_in_logs
from redissmoke.retry.matchers import MatchesRegex, OnExit

logger = py_logging.getLogger(__name__)

XDIST_WORKER_ENV = "PYTEST_XDIST_WORKER"
SPACE_ROLES = ("SpaceManager", "SpaceDeveloper", "SpaceAuditor")
CREATE_USER_TIMEOUT_SECONDS = 10.0
PROVISION_TIMEOUT_SECONDS = 60.0
QUOTA_TOTAL_SERVICES = 100
QUOTA_TOTAL_ROUTES = 1000
QUOTA_MEMORY_LIMIT_MB = 10240
PERMISSIVE_RULES = [{"destination": "0.0.0.0-255.255.255.255", "protocol": "all"}]

# cf echoes the user name first, so only a finished command with an "OK" line counts.
_USER_CREATED = OnExit(MatchesRegex(r"^OK\s*$|scim_resource_already_exists", re.MULTILINE))


class QuotaDefinition(TypedDict):
    name: str
    non_basic_services_allowed: bool
    total_services: int
    total_routes: int
    memory_limit: int


def parallel_node(env: dict[str, str] | None = None) -> int:
    """1-based index of the pytest-xdist worker, or 1 outside xdist."""
    source = os.environ if env is None else env
    worker = source.get(XDIST_WORKER_ENV, "").strip()
    if worker.startswith("gw") and worker[2:].isdigit():
        return int(worker[2:]) + 1
    return 1


def _generate_password() -> str:
    return secrets.token_urlsafe(32)


class ConfiguredContext:
    def __init__(
        self,
        config: SmokeTestConfig,
        prefix: str,
        *,
        cf: CfCli,
        node: int | None = None,
        clock: Callable[[], datetime] = datetime.now,
        password_factory: Callable[[], str] = _generate_password,
        is_persistent: bool = False,
    ) -> None:
        self.config = config
        node_index = node if node is not None else parallel_node()
        time_tag = clock().strftime("%Y_%m_%d-%Hh%Mm%S.%f")[:-3] + "s"
        suffix = f"{node_index}-{time_tag}"

        self.quota_definition_name = f"{prefix}-QUOTA-{suffix}"
        self.organization_name = f"{prefix}-ORG-{suffix}"
        self.space_name = f"{prefix}-SPACE-{suffix}"
        self.regular_user_username = f"{prefix}-USER-{suffix}"
        self.regular_user_password = password_factory()
        mask_in_logs(self.regular_user_password)
        self.cf = cf.with_secrets(self.regular_user_password)
        self.security_group_name = f"{prefix}-SECURITY_GROUP-{suffix}"
        self.quota_definition_guid = ""
        self.is_persistent = is_persistent

    def admin_user_context(self) -> UserContext:
        return UserContext(
            api=self.config.api,
            username=self.config.admin_user,
            password=self.config.admin_password,
            skip_ssl_validation=self.config.skip_ssl_validation,
        )

    def regular_user_context(self) -> UserContext:
        return UserContext(
            api=self.config.api,
            username=self.regular_user_username,
            password=self.regular_user_password,
            org=self.organization_name,
            space=self.space_name,
            skip_ssl_validation=self.config.skip_ssl_validation,
        )

    def setup(self) -> None:
        logger.info("Provisioning org=%s space=%s", self.organization_name, self.space_name)
        with self.cf.as_user(self.admin_user_context()) as admin:
            admin.run(
                "create-user",
                self.regular_user_username,
                self.regular_user_password,
                timeout_seconds=CREATE_USER_TIMEOUT_SECONDS,
                matcher=_USER_CREATED,
            )

            definition = QuotaDefinition(
                name=self.quota_definition_name,
                non_basic_services_allowed=True,
                total_services=QUOTA_TOTAL_SERVICES,
                total_routes=QUOTA_TOTAL_ROUTES,
                memory_limit=QUOTA_MEMORY_LIMIT_MB,
            )
            response = admin.api_request("POST", "/v2/quota_definitions", json.dumps(definition))
            metadata = response.get("metadata")
            if isinstance(metadata, dict):
                self.quota_definition_guid = str(metadata.get("guid", ""))

            admin.run("create-org", self.organization_name, timeout_seconds=PROVISION_TIMEOUT_SECONDS)
            admin.run(
                "set-quota",
                self.organization_name,
                self.quota_definition_name,
                timeout_seconds=PROVISION_TIMEOUT_SECONDS,
            )
            self._set_up_space_with_user_access(admin)

            if self.config.create_permissive_security_group:
                self._create_permissive_security_group(admin)

    def _set_up_space_with_user_access(self, admin: CfCli) -> None:
        admin.run(
            "create-space",
            self.space_name,
            "-o",
            self.organization_name,
            timeout_seconds=PROVISION_TIMEOUT_SECONDS,
        )
        for role in SPACE_ROLES:
            admin.run(
                "set-space-role",
                self.regular_user_username,
                self.organization_name,
                self.space_name,
                role,
                timeout_seconds=PROVISION_TIMEOUT_SECONDS,
            )

    def _create_permissive_security_group(self, admin: CfCli) -> None:
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            prefix=f"{self.security_group_name}-",
            suffix="-rules.json",
            delete=False,
        )
        rules_path = Path(handle.name)
        try:
            with handle:
                json.dump(PERMISSIVE_RULES, handle)
            admin.run(
                "create-security-group",
                self.security_group_name,
                str(rules_path),
                timeout_seconds=PROVISION_TIMEOUT_SECONDS,
            )
            admin.run(
                "bind-security-group",
                self.security_group_name,
                self.organization_name,
                self.space_name,
                timeout_seconds=PROVISION_TIMEOUT_SECONDS,
            )
        finally:
            with suppress(OSError):
                rules_path.unlink()

    def teardown(self) -> None:
        """Remove everything setup() created; every step runs even after a failure."""
        logger.info("Tearing down org=%s", self.organization_name)
        failures: list[SmokeTestError] = []

        def attempt(step: Callable[[], object]) -> None:
            try:
                step()
            except SmokeTestError as exc:
                logger.error("Teardown step failed: %s", exc)
                failures.append(exc)

        with self.cf.as_user(self.admin_user_context()) as admin:
            attempt(
                lambda: admin.run(
                    "delete-user",
                    "-f",
                    self.regular_user_username,
                    timeout_seconds=PROVISION_TIMEOUT_SECONDS,
                )
            )
            if not self.is_persistent:
                attempt(
                    lambda: admin.run(
                        "delete-org",
                        "-f",
                        self.organization_name,
                        timeout_seconds=PROVISION_TIMEOUT_SECONDS,
                    )
                )
                if self.quota_definition_guid:
                    attempt(
                        lambda: admin.api_request(
                            "DELETE",
                            f"/v2/quota_definitions/{self.quota_definition_guid}?recursive=true",
                        )
                    )
            if self.config.create_permissive_security_group:
                attempt(
                    lambda: admin.run(
                        "delete-security-group",
                        "-f",
                        self.security_group_name,
                        timeout_seconds=PROVISION_TIMEOUT_SECONDS,
                    )
                )

        if failures:
            raise failures[0]
