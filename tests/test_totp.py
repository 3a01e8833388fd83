"""Tests for TOTP generation / validation (RFC 6238)."""

import hashlib
import hmac
import struct
from datetime import datetime, timezone

import pyotp
import pytest

from totp_core import otp_core
from totp_core import (
    InvalidSecretFormat,
    TOTPParams,
    generate_totp,
    generate_totp_range,
    time_remaining,
    time_step_counter,
    validate_totp,
)

from conftest import DEMO_SECRET, RFC_SEED_SHA1, RFC_SEED_SHA256, RFC_SEED_SHA512, b32

# RFC 6238 Appendix B (8 digits, 30 second step)
RFC6238_VECTORS = [
    (59, "94287082", "46119246", "90693936"),
    (1111111109, "07081804", "68084774", "25091201"),
    (1111111111, "14050471", "67062674", "99943326"),
    (1234567890, "89005924", "91819424", "93441116"),
    (2000000000, "69279037", "90698825", "38618901"),
    (20000000000, "65353130", "77737706", "47863826"),
]

SEEDS = {"SHA1": RFC_SEED_SHA1, "SHA256": RFC_SEED_SHA256, "SHA512": RFC_SEED_SHA512}


def _cases():
    for t, sha1, sha256, sha512 in RFC6238_VECTORS:
        yield t, "SHA1", sha1
        yield t, "SHA256", sha256
        yield t, "SHA512", sha512


@pytest.mark.parametrize("at_time,algorithm,expected", list(_cases()))
def test_rfc6238_vectors(at_time, algorithm, expected):
    params = TOTPParams(algorithm=algorithm, digits=8, period=30)
    assert generate_totp(b32(SEEDS[algorithm]), params, at_time=at_time) == expected


def test_time_step_counter():
    assert time_step_counter(0, 30) == 0
    assert time_step_counter(29.9, 30) == 0
    assert time_step_counter(59, 30) == 1
    assert time_step_counter(1111111111, 30) == 37037037
    assert time_step_counter(20000000000, 30) == 666666666
    with pytest.raises(ValueError):
        time_step_counter(59, 0)


def test_end_to_end_demo_secret():
    # HMAC-SHA1 at counter floor(59 / 30) = 1, computed by hand
    key = b"Hello!\xde\xad\xbe\xef"
    digest = hmac.new(key, struct.pack(">Q", 1), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    expected = str((struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF) % 10 ** 6).zfill(6)

    params = TOTPParams(algorithm="SHA1", digits=6, period=30)
    assert generate_totp(DEMO_SECRET, params, at_time=59) == expected
    assert pyotp.TOTP(DEMO_SECRET).at(59) == expected


def test_default_params_match_pyotp():
    secret = pyotp.random_base32()
    for t in (0, 59, 1111111111, 1700000000):
        assert generate_totp(secret, at_time=t) == pyotp.TOTP(secret).at(t)


@pytest.mark.parametrize("digits", [6, 7, 8])
def test_code_width(digits):
    params = TOTPParams(digits=digits)
    for t in range(0, 3000, 30):
        code = generate_totp(DEMO_SECRET, params, at_time=t)
        assert len(code) == digits
        assert code.isdigit()


def test_leading_zero_kept():
    params = TOTPParams(digits=8)
    assert generate_totp(b32(RFC_SEED_SHA1), params, at_time=1111111109) == "07081804"


def test_generate_rejects_bad_secret():
    with pytest.raises(InvalidSecretFormat):
        generate_totp("not valid base32!!!", at_time=59)


def test_generate_defaults_to_now():
    secret = pyotp.random_base32()
    assert validate_totp(generate_totp(secret), secret)


class TestValidationWindow:
    T = 1111111111
    params = TOTPParams(digits=8, period=30, window=1)

    @property
    def secret(self):
        return b32(RFC_SEED_SHA1)

    def code(self):
        return generate_totp(self.secret, self.params, at_time=self.T)

    @pytest.mark.parametrize("delta", [-30, -15, -1, 0, 1, 15, 30])
    def test_accepts_within_one_period(self, delta):
        assert validate_totp(self.code(), self.secret, self.params, at_time=self.T + delta)

    @pytest.mark.parametrize("delta", [-61, 61, -90, 90])
    def test_rejects_two_periods_away(self, delta):
        assert not validate_totp(self.code(), self.secret, self.params, at_time=self.T + delta)

    def test_window_zero_is_exact_period(self):
        strict = TOTPParams(digits=8, period=30, window=0)
        # T is 1s into its period
        assert validate_totp(self.code(), self.secret, strict, at_time=self.T + 28)
        assert not validate_totp(self.code(), self.secret, strict, at_time=self.T + 30)

    def test_wider_window(self):
        wide = TOTPParams(digits=8, period=30, window=2)
        assert validate_totp(self.code(), self.secret, wide, at_time=self.T + 61)


def test_validate_returns_false_instead_of_raising():
    assert validate_totp("123456", "not valid base32!!!", at_time=59) is False
    assert validate_totp("12345", DEMO_SECRET, at_time=59) is False
    assert validate_totp("abcdef", DEMO_SECRET, at_time=59) is False
    assert validate_totp(None, DEMO_SECRET, at_time=59) is False


def test_validate_ignores_spaces_in_code():
    code = generate_totp(DEMO_SECRET, at_time=59)
    assert validate_totp(f"{code[:3]} {code[3:]}", DEMO_SECRET, at_time=59)


def test_validate_near_epoch_skips_negative_counters():
    code = generate_totp(DEMO_SECRET, at_time=0)
    assert validate_totp(code, DEMO_SECRET, at_time=0)


def test_time_remaining():
    assert time_remaining(30, at_time=0) == 30
    assert time_remaining(30, at_time=59) == 1
    assert time_remaining(30, at_time=60) == 30
    assert time_remaining(60, at_time=59.9) == 1
    assert 1 <= time_remaining(30) <= 30


def test_params_normalization():
    params = TOTPParams(algorithm="md5", digits=9, period=0, window=-1)
    assert params == TOTPParams()
    assert TOTPParams(period=301).period == 30
    assert TOTPParams(period=300).period == 300
    assert TOTPParams(period=1).period == 1
    assert TOTPParams(algorithm="sha-512").algorithm == "SHA512"
    assert TOTPParams(digits="7").digits == 7
    assert TOTPParams.from_mapping({"digits": 8, "period": "60"}) == TOTPParams(digits=8, period=60)


def test_range_preview():
    params = TOTPParams(digits=8)
    windows = generate_totp_range(b32(RFC_SEED_SHA1), 3, params, at_time=1111111111)
    assert [w.time_slot for w in windows] == [37037036, 37037037, 37037038]
    assert windows[0].code == "07081804"
    assert windows[1].code == "14050471"
    assert windows[1].valid_from == datetime.fromtimestamp(1111111110, tz=timezone.utc)
    assert windows[1].valid_to == datetime.fromtimestamp(1111111140, tz=timezone.utc)


def test_range_preview_skips_slots_before_epoch():
    windows = generate_totp_range(DEMO_SECRET, 5, at_time=10)
    assert [w.time_slot for w in windows] == [0, 1, 2]


def test_window_is_capped():
    assert TOTPParams(window=otp_core.MAX_WINDOW).window == otp_core.MAX_WINDOW
    assert TOTPParams(window=otp_core.MAX_WINDOW + 1).window == otp_core.DEFAULT_WINDOW
    assert TOTPParams.from_mapping({"window": 100000000}).window == otp_core.DEFAULT_WINDOW


def test_validate_far_future_does_not_raise():
    assert validate_totp("123456", DEMO_SECRET, at_time=1e30) is False


def test_range_preview_stops_at_last_representable_time():
    windows = generate_totp_range(DEMO_SECRET, 3, at_time=otp_core.MAX_TIMESTAMP)
    assert windows
    assert all(w.valid_to.year == 9999 for w in windows)


def test_validation_compares_through_compare_digest(monkeypatch):
    real_compare = hmac.compare_digest
    calls = []

    def spy(a, b):
        calls.append((a, b))
        return real_compare(a, b)

    monkeypatch.setattr(otp_core.hmac, "compare_digest", spy)
    params = TOTPParams(digits=8, window=2)
    assert not validate_totp("00000000", b32(RFC_SEED_SHA1), params, at_time=1111111111)
    # one comparison per counter in [-2, +2], never a plain ==
    assert len(calls) == 5
    assert all(candidate == "00000000" for _, candidate in calls)

    calls.clear()
    assert validate_totp("14050471", b32(RFC_SEED_SHA1), params, at_time=1111111111)
    assert calls[-1] == ("14050471", "14050471")
