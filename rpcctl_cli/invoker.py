"""
Dynamic invocation of a reflected method.

Untyped parameters are turned into a typed request by round-tripping them
through JSON against the method's input schema, so that ``"3"`` lands in
an int32 field as 3 and enum names are accepted.
"""

import json
import time

import grpc
from google.protobuf import json_format
from google.protobuf.message_factory import GetMessageClass

from rpcctl_cli.exceptions import InvocationError, ParameterFormatError
from rpcctl_cli.transport import _log_rpc_event, classify_rpc_error, rpc_status


def build_request(method, params):
    """Build the request message for *method* from a plain mapping."""
    request_cls = GetMessageClass(method.input_type)
    try:
        payload = json.dumps(params)
    except (TypeError, ValueError) as e:
        raise ParameterFormatError(f"[ERROR] Parameters are not JSON-serializable: {e}") from e
    try:
        return json_format.Parse(payload, request_cls())
    except json_format.ParseError as e:
        raise ParameterFormatError(
            f"[ERROR] Parameters do not match {method.input_type.full_name}: {e}"
        ) from e


def message_to_value(message):
    """Decode one response message into plain dicts/lists/scalars."""
    return json_format.MessageToDict(message, preserving_proto_field_name=True)


def normalize_stream(messages):
    """One streamed message is returned as is; otherwise wrap in ``results``."""
    if len(messages) == 1:
        return messages[0]
    return {"results": list(messages)}


def invoke(method, params, channel, metadata=(), timeout=None):
    """Call *method* over *channel* and return the decoded result.

    Unary calls return the response message as a dict. Server-streaming
    calls are read to the end before anything is returned; a failure
    mid-stream discards what was read.
    """
    if method.client_streaming:
        raise InvocationError(
            f"[ERROR] Method {method.path} is {method.streaming_shape}, which is not supported."
        )
    request = build_request(method, params)
    request_cls = type(request)
    response_cls = GetMessageClass(method.output_type)
    start = time.perf_counter()
    count = 0
    try:
        if method.server_streaming:
            call = channel.unary_stream(
                method.path,
                request_serializer=request_cls.SerializeToString,
                response_deserializer=response_cls.FromString,
            )
            messages = [
                message_to_value(m) for m in call(request, metadata=metadata, timeout=timeout)
            ]
            count = len(messages)
            result = normalize_stream(messages)
        else:
            call = channel.unary_unary(
                method.path,
                request_serializer=request_cls.SerializeToString,
                response_deserializer=response_cls.FromString,
            )
            result = message_to_value(call(request, metadata=metadata, timeout=timeout))
            count = 1
    except grpc.RpcError as e:
        code, _details = rpc_status(e)
        _log_rpc_event(
            phase="invoke",
            method=method.path,
            shape=method.streaming_shape,
            status=code.name if code is not None else None,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        raise classify_rpc_error(e, method.path) from e
    _log_rpc_event(
        phase="invoke",
        method=method.path,
        shape=method.streaming_shape,
        status="OK",
        messages=count,
        latency_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    return result
