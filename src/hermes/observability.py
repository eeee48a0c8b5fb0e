"""Observability integration for instance calls and readiness probes."""

from __future__ import annotations

import json
import logging
import time
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any, Iterable, Mapping
from urllib.parse import urlparse

import msgspec

if TYPE_CHECKING:
    from .instances import InstanceRef
    from .results import CallError, ProbeResult


class CallObservabilityConfig(msgspec.Struct, frozen=True):
    """Metrics and tracing configuration for calls to instances."""

    span_name: str = "hermes.instance.call"
    datadog_metric_sent: str = "hermes.instance.calls"
    datadog_metric_error: str = "hermes.instance.call_errors"
    datadog_metric_timing: str = "hermes.instance.call_duration"


class ProbeObservabilityConfig(msgspec.Struct, frozen=True):
    """Metrics and tracing configuration for readiness probes."""

    span_name: str = "hermes.instance.probe"
    datadog_metric_ready: str = "hermes.instance.ready"
    datadog_metric_not_ready: str = "hermes.instance.not_ready"
    datadog_metric_timing: str = "hermes.instance.probe_duration"


class ObservabilityConfig(msgspec.Struct, frozen=True):
    """Top-level observability configuration."""

    enabled: bool = True
    log_events: bool = True
    opentelemetry_enabled: bool = True
    opentelemetry_tracer: str = "hermes"
    sentry_enabled: bool = True
    sentry_record_breadcrumbs: bool = False
    sentry_capture_exceptions: bool = True
    sentry_breadcrumb_category: str = "hermes"
    sentry_breadcrumb_level: str = "info"
    datadog_enabled: bool = True
    datadog_tags: tuple[tuple[str, str], ...] = ()
    call: CallObservabilityConfig = CallObservabilityConfig()
    probe: ProbeObservabilityConfig = ProbeObservabilityConfig()


class _ObservationContext:
    __slots__ = (
        "datadog_tags",
        "log_fields",
        "metric_error",
        "metric_success",
        "metric_timing",
        "span",
        "stack",
        "start",
    )

    def __init__(
        self,
        *,
        start: float,
        stack: ExitStack,
        span: Any | None,
        datadog_tags: tuple[str, ...],
        metric_success: str | None,
        metric_error: str | None,
        metric_timing: str | None,
        log_fields: Mapping[str, Any] | None = None,
    ) -> None:
        self.start = start
        self.stack = stack
        self.span = span
        self.datadog_tags = datadog_tags
        self.metric_success = metric_success
        self.metric_error = metric_error
        self.metric_timing = metric_timing
        self.log_fields = dict(log_fields or {})

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start) * 1000.0

    def close(self, error: BaseException | None = None) -> None:
        if error is None:
            self.stack.__exit__(None, None, None)
        else:
            self.stack.__exit__(type(error), error, error.__traceback__)


class Observability:
    """Coordinate structured logging, tracing, error tracking and metrics providers."""

    def __init__(self, config: ObservabilityConfig | None = None) -> None:
        self.config = config or ObservabilityConfig()
        self._tracer = None
        self._client_span_kind = None
        self._internal_span_kind = None
        self._status_cls = None
        self._status_ok = None
        self._status_error = None
        self._sentry_hub = None
        self._statsd = None
        self._logger = logging.getLogger("hermes.observability")
        self._base_datadog_tags = tuple(f"{key}:{value}" for key, value in self.config.datadog_tags)
        if self.config.enabled:
            self._prepare_opentelemetry()
            self._prepare_sentry()
            self._prepare_datadog()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _prepare_opentelemetry(self) -> None:
        if not self.config.opentelemetry_enabled:
            return
        try:
            from opentelemetry import trace  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._tracer = trace.get_tracer(self.config.opentelemetry_tracer)
        span_kind = getattr(trace, "SpanKind", None)
        self._client_span_kind = getattr(span_kind, "CLIENT", None)
        self._internal_span_kind = getattr(span_kind, "INTERNAL", None)
        status_cls = getattr(trace, "Status", None)
        status_code = getattr(trace, "StatusCode", None)
        if status_cls is not None and status_code is not None:
            self._status_cls = status_cls
            self._status_ok = getattr(status_code, "OK", None)
            self._status_error = getattr(status_code, "ERROR", None)

    def _prepare_sentry(self) -> None:
        if not self.config.sentry_enabled:
            return
        try:
            import sentry_sdk  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._sentry_hub = sentry_sdk.Hub.current

    def _prepare_datadog(self) -> None:
        if not self.config.datadog_enabled:
            return
        try:
            from datadog import statsd  # type: ignore[import-not-found]
        except ImportError:  # pragma: no cover - optional dependency
            return
        self._statsd = statsd

    def _status(self, code: Any, description: str | None = None) -> Any | None:
        if self._status_cls is None or code is None:
            return None
        if description is None:
            return self._status_cls(code)
        return self._status_cls(code, description=description)

    def _log(self, event: str, context: _ObservationContext | None, extra: Mapping[str, Any] | None = None) -> None:
        if not self.config.log_events:
            return
        payload: dict[str, Any] = {"event": event}
        if context is not None:
            payload.update(context.log_fields)
        if extra:
            payload.update({key: value for key, value in extra.items() if value is not None})
        self._logger.info(json.dumps(payload, separators=(",", ":"), default=str))

    def _start(
        self,
        span_name: str,
        *,
        kind: Any | None,
        attributes: Mapping[str, Any],
        datadog_tags: Iterable[str] = (),
        metrics: tuple[str | None, str | None, str | None] = (None, None, None),
        breadcrumb_message: str | None = None,
        breadcrumb_data: Mapping[str, Any] | None = None,
        sentry_tags: Mapping[str, Any] | None = None,
        log_fields: Mapping[str, Any] | None = None,
    ) -> _ObservationContext | None:
        if not self.config.enabled:
            return None
        stack = ExitStack()
        span = None
        if self._tracer is not None:
            span = stack.enter_context(self._tracer.start_as_current_span(span_name, kind=kind))
            for key, value in attributes.items():
                span.set_attribute(key, value)
        if self._sentry_hub is not None:
            if breadcrumb_message is not None and self.config.sentry_record_breadcrumbs:
                self._sentry_hub.add_breadcrumb(
                    category=self.config.sentry_breadcrumb_category,
                    level=self.config.sentry_breadcrumb_level,
                    message=breadcrumb_message,
                    data=dict(breadcrumb_data or {}),
                )
            scope = stack.enter_context(self._sentry_hub.push_scope())
            if sentry_tags and hasattr(scope, "set_tag"):
                for key, value in sentry_tags.items():
                    scope.set_tag(key, value)
        success_metric, error_metric, timing_metric = metrics
        return _ObservationContext(
            start=time.perf_counter(),
            stack=stack,
            span=span,
            datadog_tags=(*self._base_datadog_tags, *datadog_tags),
            metric_success=success_metric,
            metric_error=error_metric,
            metric_timing=timing_metric,
            log_fields=log_fields,
        )

    def _timing(self, context: _ObservationContext, tags: list[str]) -> None:
        if self._statsd is not None and context.metric_timing:
            self._statsd.timing(context.metric_timing, context.elapsed_ms(), tags=tags)

    def on_call_start(self, instance: "InstanceRef", method: str, url: str) -> _ObservationContext | None:
        host = urlparse(url).hostname or ""
        attributes = {
            "http.method": method,
            "http.url": url,
            "hermes.cluster": instance.cluster_id,
            "hermes.instance": instance.instance_id,
        }
        datadog_tags = [f"method:{method}", f"cluster:{instance.cluster_id}", f"instance:{instance.instance_id}"]
        if host:
            datadog_tags.append(f"host:{host}")
        context = self._start(
            self.config.call.span_name,
            kind=self._client_span_kind,
            attributes=attributes,
            datadog_tags=datadog_tags,
            metrics=(
                self.config.call.datadog_metric_sent,
                self.config.call.datadog_metric_error,
                self.config.call.datadog_metric_timing,
            ),
            breadcrumb_message=f"{method} {url}",
            breadcrumb_data={"instance": instance.instance_id, "cluster": instance.cluster_id},
            sentry_tags={"hermes.instance": instance.instance_id, "hermes.cluster": instance.cluster_id},
            log_fields={
                "method": method,
                "url": url,
                "cluster_id": instance.cluster_id,
                "instance_id": instance.instance_id,
            },
        )
        self._log("instance.call.start", context)
        return context

    def on_call_success(self, context: _ObservationContext | None, status: int) -> None:
        if context is None:
            return
        tags = [*context.datadog_tags, f"status:{status}"]
        if self._statsd is not None and context.metric_success:
            self._statsd.increment(context.metric_success, tags=tags)
        self._timing(context, tags)
        if context.span is not None:
            context.span.set_attribute("http.status_code", status)
            status_obj = self._status(self._status_ok)
            if status_obj is not None:
                context.span.set_status(status_obj)
        self._log("instance.call.success", context, {"status": status, "duration_ms": round(context.elapsed_ms(), 3)})
        context.close()

    def on_call_error(
        self,
        context: _ObservationContext | None,
        error: "CallError",
        exception: BaseException | None = None,
    ) -> None:
        if context is None:
            if exception is not None:
                self._capture_exception(exception)
            return
        tags = [*context.datadog_tags, f"error:{error.kind.value}"]
        if error.status is not None:
            tags.append(f"status:{error.status}")
        if self._statsd is not None and context.metric_error:
            self._statsd.increment(context.metric_error, tags=tags)
        self._timing(context, tags)
        if context.span is not None:
            context.span.set_attribute("hermes.error.kind", error.kind.value)
            if error.status is not None:
                context.span.set_attribute("http.status_code", error.status)
            if exception is not None and hasattr(context.span, "record_exception"):
                context.span.record_exception(exception)
            status_obj = self._status(self._status_error, description=error.describe())
            if status_obj is not None:
                context.span.set_status(status_obj)
        if exception is not None:
            self._capture_exception(exception)
        self._log(
            "instance.call.error",
            context,
            {"error_kind": error.kind.value, "status": error.status, "code": error.code, "message": error.message},
        )
        context.close()

    def on_probe_start(self, instance: "InstanceRef", *, sync: bool) -> _ObservationContext | None:
        context = self._start(
            self.config.probe.span_name,
            kind=self._internal_span_kind,
            attributes={
                "hermes.cluster": instance.cluster_id,
                "hermes.instance": instance.instance_id,
                "hermes.probe.sync": sync,
            },
            datadog_tags=[f"cluster:{instance.cluster_id}", f"instance:{instance.instance_id}"],
            metrics=(
                self.config.probe.datadog_metric_ready,
                self.config.probe.datadog_metric_not_ready,
                self.config.probe.datadog_metric_timing,
            ),
            log_fields={"cluster_id": instance.cluster_id, "instance_id": instance.instance_id, "sync": sync},
        )
        return context

    def on_probe_finish(self, context: _ObservationContext | None, result: "ProbeResult") -> None:
        if context is None:
            return
        verdict = type(result).__name__.lower()
        tags = [*context.datadog_tags, f"verdict:{verdict}", f"state:{result.state.name.lower()}"]
        metric = context.metric_success if result.ready else context.metric_error
        if self._statsd is not None and metric:
            self._statsd.increment(metric, tags=tags)
        self._timing(context, tags)
        if context.span is not None:
            context.span.set_attribute("hermes.probe.verdict", verdict)
            context.span.set_attribute("hermes.probe.state", result.state.name)
            status_obj = self._status(self._status_ok)
            if status_obj is not None:
                context.span.set_status(status_obj)
        self._log(
            "instance.probe.finish",
            context,
            {"verdict": verdict, "state": result.state.name, "duration_ms": round(context.elapsed_ms(), 3)},
        )
        context.close()

    def _capture_exception(self, error: BaseException) -> None:
        if self._sentry_hub is not None and self.config.sentry_capture_exceptions:
            self._sentry_hub.capture_exception(error)


__all__ = [
    "CallObservabilityConfig",
    "Observability",
    "ObservabilityConfig",
    "ProbeObservabilityConfig",
]
