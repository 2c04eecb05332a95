from __future__ import annotations

import io

import pytest

hypothesis = pytest.importorskip("hypothesis")
st = pytest.importorskip("hypothesis.strategies")

from asset_pipeline.fingerprint import (  # noqa: E402
    FINGERPRINT_RE,
    content_hash,
    fingerprint_name,
    hash_bytes,
    is_fingerprinted,
    strip_fingerprint,
)


_segment = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789_-", min_size=1, max_size=12)
_ext = st.sampled_from([".css", ".js", ".png", ".svg", ".woff2", ".map"])


@st.composite
def asset_paths(draw):
    dirs = draw(st.lists(_segment, max_size=3))
    name = draw(_segment)
    return "/".join([*dirs, name + draw(_ext)])


@hypothesis.given(data=st.binary(max_size=4096))
def test_fingerprint_deterministic(data):
    first = content_hash(io.BytesIO(data))
    assert first == content_hash(io.BytesIO(data))
    assert len(first) == 8
    assert first == first.lower()


@hypothesis.given(a=st.binary(max_size=512), b=st.binary(max_size=512))
def test_fingerprint_differs_for_different_content(a, b):
    hypothesis.assume(a != b)
    assert hash_bytes(a) != hash_bytes(b)


@hypothesis.given(path=asset_paths(), data=st.binary(max_size=256))
def test_strip_fingerprint_round_trip(path, data):
    hypothesis.assume(not FINGERPRINT_RE.match(path))
    fingerprinted = fingerprint_name(path, hash_bytes(data))
    assert is_fingerprinted(fingerprinted)
    assert strip_fingerprint(fingerprinted) == path
