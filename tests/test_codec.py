import wxstore.storage.codec as codec_module
from wxstore.storage.codec import (
    ENCRYPTED_PREFIX,
    Ciphertext,
    FieldCodec,
    Plaintext,
    parse_stored,
    render_stored,
)


def test_passthrough_without_secret():
    codec = FieldCodec(None)
    assert not codec.enabled
    assert codec.encrypt("wx-secret") == "wx-secret"
    assert codec.decrypt("wx-secret") == "wx-secret"


def test_empty_values_store_none():
    codec = FieldCodec("k")
    assert codec.encrypt("") is None
    assert codec.encrypt(None) is None
    assert codec.decrypt("") is None
    assert codec.decrypt(None) is None


def test_encrypted_value_is_tagged_and_opaque():
    codec = FieldCodec("correct horse")
    stored = codec.encrypt("wx-secret")
    assert stored.startswith(ENCRYPTED_PREFIX)
    assert "wx-secret" not in stored
    assert codec.decrypt(stored) == "wx-secret"


def test_same_plaintext_encrypts_differently():
    codec = FieldCodec("k")
    first = codec.encrypt("value")
    second = codec.encrypt("value")
    assert first != second
    assert codec.decrypt(first) == codec.decrypt(second) == "value"


def test_wrong_key_returns_none():
    stored = FieldCodec("key-a").encrypt("value")
    assert FieldCodec("key-b").decrypt(stored) is None


def test_ciphertext_without_key_returns_none():
    stored = FieldCodec("key-a").encrypt("value")
    assert FieldCodec(None).decrypt(stored) is None


def test_legacy_plaintext_readable_with_key():
    assert FieldCodec("k").decrypt("plain-legacy") == "plain-legacy"


def test_damaged_payloads_return_none():
    codec = FieldCodec("k")
    assert codec.decrypt(ENCRYPTED_PREFIX + "!!!not base64!!!") is None
    assert codec.decrypt(ENCRYPTED_PREFIX + "c2hvcnQ=") is None
    stored = codec.encrypt("value")
    tampered = stored[:-4] + ("AAAA" if not stored.endswith("AAAA") else "BBBB")
    assert codec.decrypt(tampered) is None


def test_parse_and_render_tagging():
    assert parse_stored("abc") == Plaintext("abc")
    parsed = parse_stored("enc:xyz")
    assert isinstance(parsed, Ciphertext)
    assert parsed.token == "xyz"
    assert render_stored(parsed) == "enc:xyz"
    assert render_stored(Plaintext("abc")) == "abc"


def test_unicode_round_trip():
    codec = FieldCodec("密钥")
    assert codec.decrypt(codec.encrypt("公众号配置")) == "公众号配置"


def test_key_derived_once_per_secret(monkeypatch):
    calls = []
    real = codec_module.PBKDF2HMAC

    def counting(**kwargs):
        calls.append(kwargs["salt"])
        return real(**kwargs)

    monkeypatch.setattr(codec_module, "PBKDF2HMAC", counting)
    codec_module._derive_master_key.cache_clear()

    codec = FieldCodec("fresh-secret-for-counting")
    stored = [codec.encrypt(f"value-{i}") for i in range(300)]
    assert [codec.decrypt(s) for s in stored] == [f"value-{i}" for i in range(300)]
    assert len(calls) == 1


def test_codecs_with_same_secret_share_key():
    stored = FieldCodec("shared").encrypt("appsecret")
    assert FieldCodec("shared").decrypt(stored) == "appsecret"
    assert FieldCodec("other").decrypt(stored) is None
