"""Tests for the msgpack codec and the socket pair channel."""

import os

import msgpack
import pytest

from batesstamp.exceptions import AnnotationError, ChannelTransportError, ChildCrashed
from batesstamp.ipc import (
    MAX_FRAME,
    Channel,
    decode_request,
    decode_response,
    encode_failure,
    encode_request,
    encode_response,
)


class TestCodec:
    """Tests for request/response encoding."""

    def test_request_round_trip(self):
        frame = encode_request("/in/ünïcode file.tif", "/out/ünïcode file.tif")
        assert decode_request(frame) == ("/in/ünïcode file.tif", "/out/ünïcode file.tif")

    def test_request_is_a_two_element_array(self):
        assert msgpack.unpackb(encode_request("a", "b"), raw=False) == ["a", "b"]

    def test_response_round_trip(self):
        assert decode_response(encode_response(17)) == 17

    def test_zero_pages_is_a_success(self):
        assert decode_response(encode_response(0)) == 0

    def test_failure_is_distinguishable_from_zero(self):
        frame = encode_failure(AnnotationError("cannot read a.tif"))
        assert frame != encode_response(0)
        with pytest.raises(AnnotationError) as info:
            decode_response(frame)
        assert "cannot read a.tif" in str(info.value)
        assert info.value.kind == "AnnotationError"

    def test_failure_keeps_the_original_exception_name(self):
        with pytest.raises(AnnotationError) as info:
            decode_response(encode_failure(ValueError("bad position")))
        assert info.value.kind == "ValueError"

    def test_negative_page_count_cannot_be_encoded(self):
        with pytest.raises(ValueError):
            encode_response(-1)

    def test_oversized_request_is_rejected(self):
        with pytest.raises(ChannelTransportError):
            encode_request("x" * MAX_FRAME, "y")

    def test_undecodable_file_name_is_a_transport_error(self):
        source = os.fsdecode(b"/in/bad\xff.tif")
        with pytest.raises(ChannelTransportError):
            encode_request(source, "/out/a.tif")

    def test_failure_message_with_undecodable_name_still_encodes(self):
        error = AnnotationError("Cannot read " + os.fsdecode(b"bad\xff.tif"))
        with pytest.raises(AnnotationError) as info:
            decode_response(encode_failure(error))
        assert "bad" in str(info.value)

    def test_malformed_frame(self):
        with pytest.raises(ChannelTransportError):
            decode_request(b"\xc1")

    def test_request_with_wrong_shape(self):
        with pytest.raises(ChannelTransportError):
            decode_request(msgpack.packb(["only-one"]))

    def test_unexpected_response_payload(self):
        with pytest.raises(ChannelTransportError):
            decode_response(msgpack.packb("three"))


class TestChannel:
    """Tests for the socket pair wrapper, both ends in one process."""

    def test_request_and_response_exchange(self):
        with Channel() as channel:
            channel.send_request("/in/a.tif", "/out/a.tif")
            assert channel.receive_request(timeout=1) == ("/in/a.tif", "/out/a.tif")
            channel.send_response(5)
            assert channel.receive_response(timeout=1) == 5

    def test_failure_exchange(self):
        with Channel() as channel:
            channel.send_failure(AnnotationError("broken"))
            with pytest.raises(AnnotationError):
                channel.receive_response(timeout=1)

    def test_as_parent_closes_the_child_end(self):
        with Channel() as channel:
            channel.as_parent()
            assert channel.open_ends() == 1
            with pytest.raises(ChannelTransportError):
                channel.send_response(1)

    def test_as_child_closes_the_parent_end(self):
        with Channel() as channel:
            channel.as_child()
            assert channel.open_ends() == 1
            with pytest.raises(ChannelTransportError):
                channel.send_request("a", "b")

    def test_context_manager_closes_both_ends(self):
        with Channel() as channel:
            pass
        assert channel.closed

    def test_ends_are_released_on_error(self):
        channel = Channel()
        with pytest.raises(RuntimeError):
            with channel:
                raise RuntimeError("boom")
        assert channel.closed

    def test_close_is_idempotent(self):
        channel = Channel()
        channel.close()
        channel.close()
        assert channel.closed

    def test_dead_peer_without_response_is_a_crash(self):
        with Channel() as channel:
            with pytest.raises(ChildCrashed):
                channel.receive_response(poll_interval=0.05, is_alive=lambda: False)

    def test_response_sent_before_exit_is_still_read(self):
        with Channel() as channel:
            channel.send_response(3)
            assert channel.receive_response(poll_interval=0.05, is_alive=lambda: False) == 3

    def test_receive_times_out(self):
        with Channel() as channel:
            with pytest.raises(ChannelTransportError):
                channel.receive_response(timeout=0.2, poll_interval=0.05, is_alive=lambda: True)

    def test_oversized_datagram_is_rejected(self):
        with Channel() as channel:
            channel._child.send(b"x" * (MAX_FRAME + 10))
            with pytest.raises(ChannelTransportError):
                channel.receive_response(timeout=1)

    def test_child_request_timeout(self):
        with Channel() as channel:
            with pytest.raises(ChannelTransportError):
                channel.receive_request(timeout=0.1)
