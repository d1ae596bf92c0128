from metabase_provider.core.redaction import (
    is_redacted,
    is_sensitive_detail,
    partition_details,
    public_details,
)


def test_redaction_marker_matches_whole_value_only():
    assert is_redacted("**MetabasePass**")
    assert not is_redacted("****")          # nothing between the markers
    assert not is_redacted("a**b**")
    assert not is_redacted("**open")
    assert not is_redacted(42)


def test_sensitive_by_key_or_by_marker():
    assert is_sensitive_detail("password", "plain")
    assert is_sensitive_detail("service-account-json", "{}")
    assert is_sensitive_detail("token", "**hidden**")
    assert not is_sensitive_detail("host", "pg")


def test_partition_puts_every_key_in_exactly_one_half():
    details = {
        "host": "pg",
        "port": 5432,
        "password": "**MetabasePass**",
        "ssl-key": "**MetabasePass**",
        "user": "postgres",
    }
    public, secure = partition_details(details)
    assert public == {"host": "pg", "port": 5432, "user": "postgres"}
    assert secure == {"password": "**MetabasePass**", "ssl-key": "**MetabasePass**"}
    assert set(public) | set(secure) == set(details)
    assert not set(public) & set(secure)


def test_public_details_drops_secrets():
    assert public_details({"host": "h", "password": "p"}) == {"host": "h"}
