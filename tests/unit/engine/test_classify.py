# tests/unit/engine/test_classify.py — v1
"""Tests for engine/classify.py — exception to error-kind mapping."""

from __future__ import annotations

import asyncio
import socket

import pytest

from genstage.core.errors import (
    AdaptorTimeout,
    AdaptorUnavailable,
    GenerationFailed,
    ProviderUnreachable,
    TemplateNotFound,
)
from genstage.engine.classify import classify_error


class APIConnectionError(Exception):
    """Same name as the SDK connection error."""


class APITimeoutError(APIConnectionError):
    """SDK timeout errors derive from connection errors."""


class TestClassifyError:
    def test_generation_errors_pass_through(self):
        err = TemplateNotFound("s", "text")
        assert classify_error(err) is err

    @pytest.mark.parametrize("exc", [asyncio.TimeoutError(), TimeoutError("slow"), APITimeoutError("t")])
    def test_timeouts(self, exc):
        result = classify_error(exc)
        assert isinstance(result, AdaptorTimeout)
        assert result.fatal is False

    @pytest.mark.parametrize(
        "exc", [ConnectionRefusedError("refused"), socket.gaierror("dns"), APIConnectionError("down")]
    )
    def test_unreachable_is_fatal(self, exc):
        result = classify_error(exc)
        assert isinstance(result, ProviderUnreachable)
        assert result.fatal is True

    def test_missing_sdk(self):
        assert isinstance(classify_error(ImportError("no google")), AdaptorUnavailable)

    def test_everything_else(self):
        result = classify_error(RuntimeError("safety block"))
        assert isinstance(result, GenerationFailed)
        assert result.message == "safety block"

    def test_empty_message_uses_type_name(self):
        assert classify_error(KeyError()).message == "KeyError"
