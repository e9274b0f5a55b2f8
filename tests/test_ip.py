import random

from starlette.requests import Request

from leaderboard.backend.intake.ip import client_ip, hash_ip, normalize_ip


def test_ipv4_is_identity():
    for ip in ["1.2.3.4", "192.168.0.1", "255.255.255.255", "10.0.0.254"]:
        assert normalize_ip(ip) == ip


def test_ipv6_collapses_to_64_prefix():
    assert normalize_ip("2001:db8::1") == "2001:db8:0:0::/64"
    assert normalize_ip("2001:db8::1") == normalize_ip("2001:db8::ffff")


def test_ipv6_textual_variants_share_a_key():
    assert normalize_ip("2001:0DB8:0000:0000:1234::1") == normalize_ip("2001:db8::abcd:1")
    assert normalize_ip("fe80::1%eth0") == "fe80:0:0:0::/64"


def test_ipv6_same_subnet_property():
    rng = random.Random(7)
    for _ in range(200):
        prefix = rng.getrandbits(64)
        a = (prefix << 64) | rng.getrandbits(64)
        b = (prefix << 64) | rng.getrandbits(64)
        as_text = lambda n: ":".join(f"{(n >> s) & 0xFFFF:x}" for s in range(112, -1, -16))
        assert normalize_ip(as_text(a)) == normalize_ip(as_text(b))


def test_unparseable_ipv6_falls_back_to_group_split():
    assert normalize_ip("zz::1") == "zz:0:0:0::/64"
    assert normalize_ip("unknown") == "unknown"


def test_hash_is_salted_and_never_raw():
    h1 = hash_ip("2001:db8::1", "secret-a")
    assert h1 == hash_ip("2001:db8::ffff", "secret-a")
    assert h1 != hash_ip("2001:db8::1", "secret-b")
    assert len(h1) == 64


def _request(headers, client=("203.0.113.9", 1234)):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": client,
    }
    return Request(scope)


def test_client_ip_header_precedence():
    assert client_ip(_request({"X-Forwarded-For": "1.1.1.1, 2.2.2.2", "X-Real-IP": "3.3.3.3"})) == "1.1.1.1"
    assert client_ip(_request({"X-Real-IP": "3.3.3.3", "CF-Connecting-IP": "4.4.4.4"})) == "3.3.3.3"
    assert client_ip(_request({"CF-Connecting-IP": "4.4.4.4"})) == "4.4.4.4"
    assert client_ip(_request({})) == "203.0.113.9"
    assert client_ip(_request({}, client=None)) == "unknown"


def test_ipv4_mapped_addresses_keep_their_own_key():
    assert normalize_ip("::ffff:198.51.100.7") == "198.51.100.7"
    assert normalize_ip("::FFFF:203.0.113.9") == "203.0.113.9"
    assert hash_ip("::ffff:198.51.100.7", "s") != hash_ip("::ffff:203.0.113.9", "s")
    assert hash_ip("::ffff:198.51.100.7", "s") == hash_ip("198.51.100.7", "s")
