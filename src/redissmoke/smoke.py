"""End-to-end smoke workflow: provision, deploy, check the app, tear down."""

from __future__ import annotations

import logging as py_logging
import uuid
from collections.abc import Callable, Sequence

from redissmoke.app import RedisApp
from redissmoke.cf.cli import CfCli
from redissmoke.cf.context import ConfiguredContext
from redissmoke.config import SmokeTestConfig
from redissmoke.errors import PlanSelectionError, SmokeTestError
from redissmoke.reporter import SmokeTestReport

logger = py_logging.getLogger(__name__)

CONTEXT_PREFIX = "REDIS-SMOKE"
APP_NAME_PREFIX = "redis-example-app"
TEST_KEY = "mykey"
TEST_VALUE = "myvalue"
APP_TIMEOUT_SECONDS = 60.0
PUSH_TIMEOUT_SECONDS = 300.0
SERVICE_TIMEOUT_SECONDS = 120.0
APP_MEMORY = "256M"

AppFactory = Callable[[str, SmokeTestConfig], RedisApp]
ContextFactory = Callable[[SmokeTestConfig, CfCli], ConfiguredContext]


def default_app_factory(uri: str, config: SmokeTestConfig) -> RedisApp:
    return RedisApp(
        uri,
        config.scaled_timeout(APP_TIMEOUT_SECONDS),
        config.retry.backoff_policy(),
        max_attempts=config.retry.max_retries(),
        skip_ssl_validation=config.skip_ssl_validation,
    )


def default_context_factory(config: SmokeTestConfig, cf: CfCli) -> ConfiguredContext:
    return ConfiguredContext(config, CONTEXT_PREFIX, cf=cf)


class SmokeTest:
    def __init__(
        self,
        config: SmokeTestConfig,
        *,
        cf: CfCli | None = None,
        report: SmokeTestReport | None = None,
        app_factory: AppFactory = default_app_factory,
        context_factory: ContextFactory = default_context_factory,
        name_suffix: Callable[[], str] | None = None,
    ) -> None:
        self.config = config
        self.cf = cf or CfCli(timeout_scale=config.timeout_scale, secrets=(config.admin_password,))
        self.report = report or SmokeTestReport()
        self._app_factory = app_factory
        self._context_factory = context_factory
        self._name_suffix = name_suffix or (lambda: uuid.uuid4().hex[:8])

    def _step(self, name: str, action: Callable[[], object]) -> bool:
        self.report.record_started(name)
        logger.info("Step started: %s", name)
        try:
            action()
        except SmokeTestError as exc:
            logger.error("Step failed: %s (%s)", name, exc)
            self.report.record_error(name, exc.message)
            return False
        self.report.record_success(name)
        logger.info("Step passed: %s", name)
        return True

    def _select_plans(self, plans: Sequence[str] | None) -> list[str]:
        if not plans:
            selected = list(self.config.plan_names)
        else:
            unknown = [plan for plan in plans if plan not in self.config.plan_names]
            if unknown:
                raise PlanSelectionError(
                    f"Unknown service plan(s): {', '.join(unknown)}",
                    unknown_plans=tuple(unknown),
                    hint=f"Configured plans: {', '.join(self.config.plan_names) or 'none'}.",
                )
            selected = list(plans)
        if not selected:
            raise PlanSelectionError(
                "No service plans to test.",
                hint="Add plan_names to the smoke test config.",
            )
        return selected

    def run(self, plans: Sequence[str] | None = None) -> SmokeTestReport:
        selected = self._select_plans(plans)
        context = self._context_factory(self.config, self.cf)
        try:
            if self._step("context setup", context.setup):
                self._step("regular user session", lambda: self._run_plans(context, selected))
        finally:
            self._step("context teardown", context.teardown)
        return self.report

    def _run_plans(self, context: ConfiguredContext, plans: list[str]) -> None:
        with self.cf.as_user(context.regular_user_context()) as user_cf:
            for plan in plans:
                self._run_plan(user_cf, plan)

    def _run_plan(self, cf: CfCli, plan: str) -> None:
        suffix = self._name_suffix()
        app_name = f"{APP_NAME_PREFIX}-{suffix}"
        instance_name = f"redis-{plan}-{suffix}"
        app = self._app_factory(f"https://{app_name}.{self.config.apps_domain}", self.config)
        cleanup: list[tuple[str, Callable[[], object]]] = []
        logger.info("Testing plan=%s app=%s instance=%s", plan, app_name, instance_name)

        steps: list[tuple[str, Callable[[], object], tuple[str, Callable[[], object]] | None]] = [
            (
                "push app",
                lambda: cf.run(
                    "push",
                    app_name,
                    "-p",
                    self.config.app_path,
                    "-m",
                    APP_MEMORY,
                    "--no-start",
                    "--no-route",
                    timeout_seconds=PUSH_TIMEOUT_SECONDS,
                ),
                ("delete app", lambda: cf.run("delete", app_name, "-f", "-r")),
            ),
            (
                "map route",
                lambda: cf.run("map-route", app_name, self.config.apps_domain, "--hostname", app_name),
                None,
            ),
            (
                "create service",
                lambda: cf.run(
                    "create-service",
                    self.config.service_name,
                    plan,
                    instance_name,
                    timeout_seconds=SERVICE_TIMEOUT_SECONDS,
                ),
                (
                    "delete service",
                    lambda: cf.run("delete-service", "-f", instance_name, timeout_seconds=SERVICE_TIMEOUT_SECONDS),
                ),
            ),
            (
                "bind service",
                lambda: cf.run("bind-service", app_name, instance_name),
                ("unbind service", lambda: cf.run("unbind-service", app_name, instance_name)),
            ),
            ("start app", lambda: cf.run("start", app_name, timeout_seconds=PUSH_TIMEOUT_SECONDS), None),
            ("app is running", app.is_running, None),
            (f"write {TEST_KEY}", lambda: app.write(TEST_KEY, TEST_VALUE), None),
            (f"read {TEST_KEY}", lambda: app.read_assert(TEST_KEY, TEST_VALUE), None),
        ]

        for name, action, undo in steps:
            if not self._step(f"[{plan}] {name}", action):
                break
            if undo is not None:
                cleanup.append(undo)

        for name, undo in reversed(cleanup):
            self._step(f"[{plan}] {name}", undo)
