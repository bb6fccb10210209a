import asyncio
from types import SimpleNamespace

import grpc
import pytest

from voice_memos.errors import RecognitionError
from voice_memos.services.recognizer import (
    RivaRecognizer,
    await_call,
    bearer_metadata,
    build_request,
    classify_rpc_error,
    parse_response,
)
from voice_memos.types import RecognitionConfig, TranscodedAudio


class FakeRpcError(grpc.RpcError):
    def __init__(self, code: grpc.StatusCode, details: str) -> None:
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self) -> grpc.StatusCode:
        return self._code

    def details(self) -> str:
        return self._details


class FakeCall:
    def __init__(self) -> None:
        self._callbacks = []
        self._done = False
        self._cancelled = False
        self._result = None
        self._exception = None
        self.cancel_calls = 0

    def add_done_callback(self, callback) -> None:
        if self._done:
            callback(self)
        else:
            self._callbacks.append(callback)

    def cancelled(self) -> bool:
        return self._cancelled

    def exception(self):
        return self._exception

    def result(self):
        return self._result

    def cancel(self) -> bool:
        self.cancel_calls += 1
        return True

    def finish(self, result=None, exception=None) -> None:
        self._result = result
        self._exception = exception
        self._done = True
        for callback in self._callbacks:
            callback(self)


def _alt(transcript: str, confidence: float = 0.9):
    return SimpleNamespace(transcript=transcript, confidence=confidence)


def _schema() -> SimpleNamespace:
    return SimpleNamespace(
        protos=SimpleNamespace(
            RecognizeRequest=lambda **kwargs: SimpleNamespace(**kwargs),
            RecognitionConfig=lambda **kwargs: SimpleNamespace(**kwargs),
        ),
        services=None,
    )


def _config(credential: str = "nvapi-secret\n") -> RecognitionConfig:
    return RecognitionConfig(language_code="en-US", credential=credential)


def test_bearer_metadata_strips_whitespace() -> None:
    assert bearer_metadata(" nvapi-secret\n") == (("authorization", "Bearer nvapi-secret"),)
    assert bearer_metadata("key", "fn-1") == (("authorization", "Bearer key"), ("function-id", "fn-1"))


def test_build_request_uses_linear_pcm() -> None:
    request = build_request(_schema(), TranscodedAudio(pcm=b"\x00\x01"), _config())

    assert request.audio == b"\x00\x01"
    assert request.config.encoding == 1
    assert request.config.sample_rate_hertz == 16000
    assert request.config.language_code == "en-US"
    assert request.config.max_alternatives == 1


def test_build_request_rejects_unknown_encoding() -> None:
    config = RecognitionConfig(language_code="en-US", credential="k", encoding="MP3")
    with pytest.raises(ValueError):
        build_request(_schema(), TranscodedAudio(pcm=b""), config)


def test_parse_response_joins_results() -> None:
    response = SimpleNamespace(
        results=[
            SimpleNamespace(alternatives=[_alt(" hello there "), _alt("hollow there", 0.2)]),
            SimpleNamespace(alternatives=[]),
            SimpleNamespace(alternatives=[_alt("general kenobi")]),
        ]
    )

    result = parse_response(response)

    assert result.text == "hello there general kenobi"
    assert [alt.transcript for alt in result.alternatives] == ["hello there", "hollow there"]
    assert result.alternatives[1].confidence == pytest.approx(0.2)


def test_parse_response_without_speech_is_empty() -> None:
    result = parse_response(SimpleNamespace(results=[]))
    assert result.text == ""
    assert result.alternatives == []


def test_parse_response_malformed() -> None:
    with pytest.raises(RecognitionError) as excinfo:
        parse_response(object())
    assert excinfo.value.kind == "malformed"


@pytest.mark.parametrize(
    ("code", "kind"),
    [
        (grpc.StatusCode.UNAUTHENTICATED, "unauthorized"),
        (grpc.StatusCode.PERMISSION_DENIED, "unauthorized"),
        (grpc.StatusCode.DEADLINE_EXCEEDED, "timeout"),
        (grpc.StatusCode.UNAVAILABLE, "transport"),
    ],
)
def test_classify_rpc_error(code: grpc.StatusCode, kind: str) -> None:
    error = classify_rpc_error(FakeRpcError(code, "nope"))
    assert error.kind == kind


def test_classify_rpc_error_transport_includes_code() -> None:
    error = classify_rpc_error(FakeRpcError(grpc.StatusCode.UNAVAILABLE, "connection reset"))
    assert error.details == "UNAVAILABLE: connection reset"


@pytest.mark.asyncio
async def test_await_call_resolves_once() -> None:
    call = FakeCall()
    outcome = await_call(call)

    call.finish(result="first")
    await asyncio.sleep(0)
    call.finish(result="second")
    await asyncio.sleep(0)

    assert outcome.done()
    assert outcome.result() == "first"


@pytest.mark.asyncio
async def test_await_call_propagates_exception() -> None:
    call = FakeCall()
    outcome = await_call(call)
    call.finish(exception=FakeRpcError(grpc.StatusCode.INTERNAL, "boom"))

    with pytest.raises(FakeRpcError):
        await outcome


@pytest.mark.asyncio
async def test_await_call_cancel_cancels_rpc() -> None:
    call = FakeCall()
    outcome = await_call(call)

    outcome.cancel()
    await asyncio.sleep(0)

    assert call.cancel_calls == 1


class FakeStub:
    def __init__(self, call: FakeCall) -> None:
        self.calls = []
        stub = self

        class _Method:
            def future(self, request, metadata=None, timeout=None):
                stub.calls.append((request, metadata, timeout))
                return call

        self.Recognize = _Method()


@pytest.mark.asyncio
async def test_recognize_sends_metadata_and_parses() -> None:
    call = FakeCall()
    call.finish(result=SimpleNamespace(results=[SimpleNamespace(alternatives=[_alt("remember the milk")])]))
    stub = FakeStub(call)
    recognizer = RivaRecognizer(stub, _schema(), function_id="fn-id", timeout_seconds=5.0)

    result = await recognizer.recognize(TranscodedAudio(pcm=b"pcm"), _config())

    assert result.text == "remember the milk"
    request, metadata, timeout = stub.calls[0]
    assert request.audio == b"pcm"
    assert ("authorization", "Bearer nvapi-secret") in metadata
    assert ("function-id", "fn-id") in metadata
    assert timeout == 5.0


@pytest.mark.asyncio
async def test_recognize_classifies_rpc_errors() -> None:
    call = FakeCall()
    call.finish(exception=FakeRpcError(grpc.StatusCode.UNAUTHENTICATED, "bad key"))
    recognizer = RivaRecognizer(FakeStub(call), _schema())

    with pytest.raises(RecognitionError) as excinfo:
        await recognizer.recognize(TranscodedAudio(pcm=b"pcm"), _config())

    assert excinfo.value.kind == "unauthorized"
    assert excinfo.value.status_code == 502


def test_bundled_schema_builds_linear_pcm_request() -> None:
    pytest.importorskip("grpc_tools")
    from voice_memos.services.recognizer import load_schema

    schema = load_schema()
    request = build_request(schema, TranscodedAudio(pcm=b"\x01\x02"), _config())

    assert request.config.encoding == 1
    assert request.config.sample_rate_hertz == 16000
    assert request.config.enable_automatic_punctuation is True
    assert hasattr(schema.services, "RivaSpeechRecognitionStub")
