"""Tests for the totp-cli command line wrapper."""

import json

from totp_core import otp_cli, decode_secret

from conftest import DEMO_SECRET, RFC_SEED_SHA1, b32


def test_secret(capsys):
    assert otp_cli.main(["secret", "--bytes", "10"]) == otp_cli.EXIT_OK
    secret = capsys.readouterr().out.strip()
    assert len(decode_secret(secret)) == 10


def test_totp_at_fixed_time(capsys):
    rc = otp_cli.main(["totp", "--secret", b32(RFC_SEED_SHA1), "--digits", "8", "--at", "59"])
    assert rc == otp_cli.EXIT_OK
    assert capsys.readouterr().out.strip() == "94287082  (valid 1s)"


def test_hotp(capsys):
    otp_cli.main(["hotp", "--secret", b32(RFC_SEED_SHA1), "--counter", "2"])
    assert capsys.readouterr().out.strip() == "359152"


def test_verify_exit_codes(capsys):
    secret = b32(RFC_SEED_SHA1)
    ok = otp_cli.main(["verify", "--secret", secret, "--code", "94287082", "--digits", "8", "--at", "59"])
    bad = otp_cli.main(["verify", "--secret", secret, "--code", "00000000", "--digits", "8", "--at", "59"])
    out = capsys.readouterr().out
    assert ok == otp_cli.EXIT_OK
    assert bad == otp_cli.EXIT_INVALID_CODE
    assert "VALID" in out and "INVALID" in out


def test_uri_and_parse(capsys):
    otp_cli.main(["uri", "--secret", DEMO_SECRET, "--account", "alice", "--issuer", "Example"])
    uri = capsys.readouterr().out.strip()
    assert uri.startswith("otpauth://totp/Example:alice?secret=JBSWY3DPEHPK3PXP")

    otp_cli.main(["parse", uri])
    fields = json.loads(capsys.readouterr().out)
    assert fields["issuer"] == "Example"
    assert fields["account_name"] == "alice"


def test_parse_rejects_bad_uri(capsys):
    rc = otp_cli.main(["parse", "http://example.com"])
    assert rc == otp_cli.EXIT_ERROR
    assert capsys.readouterr().err.startswith("[!]")


def test_bad_secret_is_an_error(capsys):
    assert otp_cli.main(["totp", "--secret", "not base32!"]) == otp_cli.EXIT_ERROR


def test_range(capsys):
    otp_cli.main(["range", "--secret", b32(RFC_SEED_SHA1), "--digits", "8", "--at", "1111111111"])
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 3
    assert lines[1].startswith("37037037  14050471")


def test_account_lifecycle(capsys, db_path):
    db = ["--db", str(db_path)]

    otp_cli.main(db + ["account", "list"])
    assert capsys.readouterr().out.strip() == "No accounts."

    otp_cli.main(db + ["account", "add", "--uri",
                       "otpauth://hotp/Example:bob?secret=" + b32(RFC_SEED_SHA1) + "&counter=0"])
    assert capsys.readouterr().out.startswith("[+] Added account 1")

    otp_cli.main(db + ["account", "add", "--secret", DEMO_SECRET, "--account", "carol"])
    capsys.readouterr()

    otp_cli.main(db + ["account", "list"])
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 2
    assert "Example" in lines[0] and "carol" in lines[1]

    otp_cli.main(db + ["account", "code", "1"])
    otp_cli.main(db + ["account", "code", "1"])
    out = capsys.readouterr().out.splitlines()
    assert out == ["755224  (counter 0)", "287082  (counter 1)"]

    assert otp_cli.main(db + ["account", "remove", "1"]) == otp_cli.EXIT_OK
    assert otp_cli.main(db + ["account", "remove", "1"]) == otp_cli.EXIT_ERROR
    assert otp_cli.main(db + ["account", "code", "1"]) == otp_cli.EXIT_ERROR


def test_account_add_needs_fields(capsys, db_path):
    rc = otp_cli.main(["--db", str(db_path), "account", "add", "--account", "x"])
    assert rc == otp_cli.EXIT_ERROR


def test_account_code_with_64_bit_counter(capsys, db_path):
    db = ["--db", str(db_path)]
    uri = f"otpauth://hotp/X:bob?secret={DEMO_SECRET}&counter={2 ** 63}"
    assert otp_cli.main(db + ["account", "add", "--uri", uri]) == otp_cli.EXIT_OK
    capsys.readouterr()

    assert otp_cli.main(db + ["account", "code", "1"]) == otp_cli.EXIT_OK
    assert capsys.readouterr().out.strip().endswith(f"(counter {2 ** 63})")


def test_account_code_exhausted_counter(capsys, db_path):
    db = ["--db", str(db_path)]
    uri = f"otpauth://hotp/X:bob?secret={DEMO_SECRET}&counter={2 ** 64 - 1}"
    otp_cli.main(db + ["account", "add", "--uri", uri])
    capsys.readouterr()

    assert otp_cli.main(db + ["account", "code", "1"]) == otp_cli.EXIT_ERROR
    assert "exhausted" in capsys.readouterr().err


def test_far_future_time_is_an_error(capsys):
    for at in ("1e30", "inf", "nan"):
        assert otp_cli.main(["totp", "--secret", DEMO_SECRET, "--at", at]) == otp_cli.EXIT_ERROR


def test_uri_rejects_colon_in_account_without_issuer(capsys):
    rc = otp_cli.main(["uri", "--secret", DEMO_SECRET, "--account", "team:alice"])
    assert rc == otp_cli.EXIT_ERROR


def test_account_add_rejects_empty_account_name(capsys, db_path):
    db = ["--db", str(db_path)]
    rc = otp_cli.main(db + ["account", "add", "--uri", f"otpauth://totp/Acme:?secret={DEMO_SECRET}"])
    assert rc == otp_cli.EXIT_ERROR
    otp_cli.main(db + ["account", "list"])
    assert capsys.readouterr().out.strip().endswith("No accounts.")
