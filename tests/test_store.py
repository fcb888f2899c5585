import sqlite3
from contextlib import closing

import pytest

from wxstore.storage.errors import ConstraintViolationError, LockTimeoutError, StorageError
from wxstore.storage.models import (
    DEFAULT_PROVIDER,
    AppConfig,
    Credential,
    Draft,
    PermanentAsset,
    PublishRecord,
    TransientAsset,
)
from wxstore.storage.sqlite import config as _config
from wxstore.storage.sqlite import drafts as _drafts
from wxstore.storage.sqlite import providers as _providers


def _raw(db_path, sql, params=()):
    with closing(sqlite3.connect(db_path)) as conn:
        return conn.execute(sql, params).fetchall()


# ---- Config -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_config_round_trip_and_replace(make_store):
    async with make_store() as store:
        assert await store.get_config() is None

        await store.save_config(AppConfig("wx123", "s3cret", token="tok"))
        config = await store.get_config()
        assert config.app_id == "wx123"
        assert config.app_secret == "s3cret"
        assert config.token == "tok"
        assert config.encoding_key is None
        assert isinstance(config.created_at, int)

        await store.save_config(AppConfig("wx456", "other", encoding_key="aes"))
        config = await store.get_config()
        assert (config.app_id, config.app_secret, config.token, config.encoding_key) == (
            "wx456",
            "other",
            None,
            "aes",
        )
        assert _raw(store.path, "SELECT COUNT(*) FROM config") == [(1,)]

        await store.clear_config()
        assert await store.get_config() is None


@pytest.mark.asyncio
async def test_config_survives_reopen(make_store):
    async with make_store() as store:
        await store.save_config(AppConfig("wx123", "s3cret"))

    async with make_store() as store:
        config = await store.get_config()
        assert config.app_secret == "s3cret"


@pytest.mark.asyncio
async def test_config_encrypted_at_rest(make_store):
    async with make_store(secret="k1") as store:
        await store.save_config(AppConfig("wx123", "s3cret", token="tok", encoding_key="aes"))
        (row,) = _raw(store.path, "SELECT app_id, app_secret, token, encoding_aes_key FROM config")
        assert row[0] == "wx123"
        for value in row[1:]:
            assert value.startswith("enc:")
        assert "s3cret" not in row[1]

        config = await store.get_config()
        assert (config.app_secret, config.token, config.encoding_key) == ("s3cret", "tok", "aes")


@pytest.mark.asyncio
async def test_config_plaintext_without_key(make_store):
    async with make_store() as store:
        await store.save_config(AppConfig("wx123", "s3cret"))
        assert _raw(store.path, "SELECT app_secret FROM config") == [("s3cret",)]


@pytest.mark.asyncio
async def test_config_wrong_or_missing_key_reads_none(make_store):
    async with make_store(secret="k1") as store:
        await store.save_config(AppConfig("wx123", "s3cret"))

    async with make_store(secret="k2") as store:
        config = await store.get_config()
        assert config.app_id == "wx123"
        assert config.app_secret is None

    async with make_store() as store:
        assert (await store.get_config()).app_secret is None


@pytest.mark.asyncio
async def test_plaintext_rows_readable_after_key_added(make_store):
    async with make_store() as store:
        await store.save_config(AppConfig("wx123", "legacy"))

    async with make_store(secret="k1") as store:
        assert (await store.get_config()).app_secret == "legacy"


@pytest.mark.asyncio
async def test_config_shape_errors_precede_database_access(make_store):
    store = make_store()
    with pytest.raises(ValueError):
        await store.save_config(AppConfig("", "secret"))
    with pytest.raises(ValueError):
        await store.save_config(AppConfig("wx123", ""))
    assert not store.is_open
    assert not store.path.exists()


# ---- Credential -------------------------------------------------------------


@pytest.mark.asyncio
async def test_credential_single_row(make_store):
    async with make_store(secret="k1") as store:
        assert await store.get_credential() is None

        await store.save_credential(Credential.issue("first", 7200, now_ms=1_000))
        await store.save_credential(Credential.issue("second", 7200, now_ms=2_000))

        assert _raw(store.path, "SELECT COUNT(*) FROM access_tokens") == [(1,)]
        credential = await store.get_credential()
        assert credential.secret == "second"
        assert credential.ttl_seconds == 7200
        assert credential.expires_at_ms == 2_000 + 7200 * 1000
        assert _raw(store.path, "SELECT access_token FROM access_tokens")[0][0].startswith("enc:")

        await store.clear_credential()
        assert await store.get_credential() is None


@pytest.mark.asyncio
async def test_credential_requires_secret(make_store):
    store = make_store()
    with pytest.raises(ValueError):
        await store.save_credential(Credential("", 7200, 0))
    assert not store.is_open


@pytest.mark.asyncio
async def test_valid_credential_honours_refresh_margin(make_store):
    async with make_store() as store:
        await store.save_credential(Credential.issue("fresh", 7200))
        assert (await store.get_valid_credential()).secret == "fresh"

        await store.save_credential(Credential.issue("stale", 30))
        assert await store.get_valid_credential() is None
        assert (await store.get_valid_credential(margin_ms=0)).secret == "stale"


def test_credential_validity():
    credential = Credential.issue("tok", 120, now_ms=0)
    assert credential.is_valid(now_ms=0)
    assert credential.is_valid(now_ms=59_999)
    assert not credential.is_valid(now_ms=60_000)
    assert not Credential(None, 120, 10**15).is_valid(now_ms=0)


# ---- Media ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_transient_assets(make_store):
    async with make_store() as store:
        await store.save_asset(TransientAsset("m1", "image", 100, url="http://img/1"))
        await store.save_asset(TransientAsset("m2", "voice", 200))
        await store.save_asset(TransientAsset("m3", "image", 300))

        assert (await store.get_asset("m1")).url == "http://img/1"
        assert (await store.get_asset("m2")).url is None
        assert await store.get_asset("missing") is None

        assert [a.asset_id for a in await store.list_assets()] == ["m3", "m2", "m1"]
        assert [a.asset_id for a in await store.list_assets("image")] == ["m3", "m1"]

        assert await store.delete_asset("m1") is True
        assert await store.delete_asset("m1") is False
        assert await store.get_asset("m1") is None


@pytest.mark.asyncio
async def test_permanent_assets(make_store):
    async with make_store() as store:
        await store.save_permanent_asset(
            PermanentAsset("p1", "image", 100, name="cover.png", updated_at=150, url="http://img/p1")
        )
        await store.save_permanent_asset(PermanentAsset("p2", "video", 200))

        asset = await store.get_permanent_asset("p1")
        assert (asset.name, asset.updated_at, asset.url) == ("cover.png", 150, "http://img/p1")
        assert [a.asset_id for a in await store.list_permanent_assets("video")] == ["p2"]

        await store.save_permanent_asset(PermanentAsset("p1", "image", 100, name="renamed.png"))
        assert (await store.get_permanent_asset("p1")).name == "renamed.png"

        assert await store.delete_permanent_asset("p2") is True
        assert [a.asset_id for a in await store.list_permanent_assets()] == ["p1"]


@pytest.mark.asyncio
async def test_asset_id_required(make_store):
    store = make_store()
    with pytest.raises(ValueError):
        await store.save_asset(TransientAsset("", "image", 1))
    with pytest.raises(ValueError):
        await store.save_permanent_asset(PermanentAsset("", "image", 1))


# ---- Drafts & publishing ----------------------------------------------------


@pytest.mark.asyncio
async def test_drafts(make_store):
    content = '{"articles": [{"title": "Hello"}]}'
    async with make_store(secret="k1") as store:
        await store.save_draft(Draft("d1", content, 10))
        await store.save_draft(Draft("d2", "{}", 20))

        # Draft bodies are stored verbatim, never encrypted.
        assert _raw(store.path, "SELECT content FROM drafts WHERE media_id = 'd1'") == [(content,)]
        assert (await store.get_draft("d1")).content == content
        assert [d.draft_id for d in await store.list_drafts()] == ["d2", "d1"]

        await store.save_draft(Draft("d1", "{}", 30))
        assert [d.draft_id for d in await store.list_drafts()] == ["d1", "d2"]

        assert await store.delete_draft("d2") is True
        assert await store.get_draft("d2") is None


@pytest.mark.asyncio
async def test_publish_records(make_store):
    async with make_store() as store:
        await store.save_publish_record(
            PublishRecord("pub1", "msg1", 100, 0, article_index=1, article_url="http://a/1")
        )
        await store.save_publish_record(PublishRecord("pub2", "msg2", 200, 1))

        record = await store.get_publish_record("pub1")
        assert (record.external_msg_id, record.article_index, record.status) == ("msg1", 1, 0)
        assert [r.publish_id for r in await store.list_publish_records()] == ["pub2", "pub1"]
        assert [r.publish_id for r in await store.list_publish_records(status=0)] == ["pub1"]

        await store.save_publish_record(PublishRecord("pub2", "msg2", 200, 0))
        assert len(await store.list_publish_records(status=0)) == 2

        assert await store.delete_publish_record("pub1") is True
        assert await store.get_publish_record("pub1") is None


@pytest.mark.asyncio
async def test_publish_record_requires_ids(make_store):
    store = make_store()
    with pytest.raises(ValueError):
        await store.save_publish_record(PublishRecord("", "msg", 1, 0))
    with pytest.raises(ValueError):
        await store.save_publish_record(PublishRecord("pub", "", 1, 0))


# ---- Providers --------------------------------------------------------------


@pytest.mark.asyncio
async def test_provider_upsert_preserves_created_at(make_store, monkeypatch):
    clock = iter([1_000, 2_000])
    monkeypatch.setattr(_providers, "now_ms", lambda: next(clock))

    async with make_store(secret="k1") as store:
        await store.save_provider_config("smms", {"token": "a"})
        await store.save_provider_config("smms", {"token": "b", "extra": [1, 2]})

        provider = await store.get_provider_config("smms")
        assert provider.config == {"token": "b", "extra": [1, 2]}
        assert provider.created_at == 1_000
        assert provider.updated_at == 2_000
        assert _raw(store.path, "SELECT config_data FROM image_host_configs")[0][0].startswith("enc:")


@pytest.mark.asyncio
async def test_provider_list_and_delete(make_store):
    async with make_store() as store:
        assert await store.get_provider_config("github") is None
        await store.save_provider_config("smms", {"token": "a"})
        await store.save_provider_config("github", {"repo": "me/img"})

        providers = await store.list_provider_configs()
        assert [p.provider_type for p in providers] == ["github", "smms"]

        assert await store.delete_provider_config("github") is True
        assert await store.delete_provider_config("github") is False
        assert [p.provider_type for p in await store.list_provider_configs()] == ["smms"]


@pytest.mark.asyncio
async def test_unreadable_provider_payload_reads_empty(make_store):
    async with make_store(secret="k1") as store:
        await store.save_provider_config("smms", {"token": "a"})

    async with make_store(secret="k2") as store:
        assert (await store.get_provider_config("smms")).config == {}
        assert [p.config for p in await store.list_provider_configs()] == [{}]

    async with make_store() as store:
        conn = store.pipeline.manager.connection
        await conn.execute(
            "INSERT INTO image_host_configs (host_type, config_data, created_at, updated_at) "
            "VALUES ('broken', 'not json', 1, 1)"
        )
        assert (await store.get_provider_config("broken")).config == {}


@pytest.mark.asyncio
async def test_active_provider(make_store):
    async with make_store() as store:
        assert await store.get_active_provider() == DEFAULT_PROVIDER == "wechat"
        await store.set_active_provider("smms")
        assert await store.get_active_provider() == "smms"
        await store.set_active_provider("github")
        assert await store.get_active_provider() == "github"
        assert _raw(store.path, "SELECT COUNT(*) FROM image_host_settings") == [(1,)]

    with pytest.raises(ValueError):
        await make_store().set_active_provider("")


# ---- Lifecycle & error mapping ------------------------------------------------


@pytest.mark.asyncio
async def test_lazy_initialization_on_first_use(make_store):
    store = make_store()
    try:
        assert not store.is_open
        await store.save_draft(Draft("d1", "{}", 1))
        assert store.is_open
        assert (await store.get_draft("d1")).content == "{}"
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_close_is_idempotent(make_store):
    store = make_store()
    await store.initialize()
    await store.close()
    await store.close()
    assert not store.is_open


@pytest.mark.asyncio
async def test_lock_error_is_typed_and_not_repaired(make_store, monkeypatch):
    async def locked(conn, codec, config):
        raise sqlite3.OperationalError("database is locked")

    async with make_store() as store:
        generation = store.pipeline.generation
        monkeypatch.setattr(_config, "save_config", locked)
        with pytest.raises(LockTimeoutError) as excinfo:
            await store.save_config(AppConfig("wx123", "s3cret"))
        assert "save config failed" in str(excinfo.value)
        assert store.pipeline.generation == generation
        assert store.pipeline.last_outcome is None


@pytest.mark.asyncio
async def test_constraint_error_is_typed(make_store):
    async with make_store() as store:
        with pytest.raises(ConstraintViolationError):
            await store._write(
                "insert draft",
                lambda conn: conn.execute(
                    "INSERT INTO drafts (media_id, content, update_time) VALUES ('x', NULL, 1)"
                ),
            )
        assert issubclass(ConstraintViolationError, StorageError)


@pytest.mark.asyncio
async def test_initialize_twice_keeps_schema(make_store):
    store = make_store()
    try:
        await store.initialize()
        await store.save_draft(Draft("d1", "{}", 1))
        await store.initialize()
        assert (await store.get_draft("d1")) is not None
        tables = {row[0] for row in _raw(store.path, "SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"config", "access_tokens", "media", "permanent_media", "drafts", "publishes",
                "image_host_configs", "image_host_settings"} <= tables
    finally:
        await store.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("secret", [None, "demo-key"])
async def test_demo_config_example(make_store, secret):
    async with make_store(secret=secret) as store:
        await store.save_config(AppConfig("wx_demo", "top-secret"))
        config = await store.get_config()
        assert (config.app_id, config.app_secret, config.token, config.encoding_key) == (
            "wx_demo",
            "top-secret",
            None,
            None,
        )


@pytest.mark.asyncio
async def test_github_provider_example(make_store):
    async with make_store() as store:
        await store.save_provider_config("github", {"repo": "x/y"})
        first = await store.get_provider_config("github")
        await store.save_provider_config("github", {"repo": "x/z"})

        providers = await store.list_provider_configs()
        assert len(providers) == 1
        assert providers[0].provider_type == "github"
        assert providers[0].config == {"repo": "x/z"}
        assert providers[0].created_at == first.created_at


# ---- Handle replaced by a concurrent repair ---------------------------------


@pytest.mark.asyncio
async def test_read_retries_when_repair_replaces_handle(make_store, monkeypatch):
    async with make_store() as store:
        await store.save_draft(Draft("d1", "{}", 10))
        real = _drafts.list_drafts
        calls = []

        async def repaired_underneath(conn):
            calls.append(conn)
            if len(calls) == 1:
                # Another task repairs while this one holds ``conn``.
                await store.pipeline.recover()
            return await real(conn)

        monkeypatch.setattr(_drafts, "list_drafts", repaired_underneath)
        drafts = await store.list_drafts()

        assert [d.draft_id for d in drafts] == ["d1"]
        assert len(calls) == 2
        assert calls[0] is not calls[1]
        assert store.pipeline.manager.owns(calls[1])


@pytest.mark.asyncio
async def test_write_retries_when_repair_replaces_handle(make_store, monkeypatch):
    async with make_store() as store:
        real = _drafts.save_draft
        recovered = []

        async def repaired_underneath(conn, draft):
            if not recovered:
                recovered.append(True)
                await store.pipeline.recover()
            return await real(conn, draft)

        monkeypatch.setattr(_drafts, "save_draft", repaired_underneath)
        await store.save_draft(Draft("d1", "{}", 10))
        assert (await store.get_draft("d1")).draft_id == "d1"


@pytest.mark.asyncio
async def test_handle_replaced_twice_is_a_storage_error(make_store, monkeypatch):
    async with make_store() as store:
        real = _drafts.list_drafts

        async def always_repaired_underneath(conn):
            await store.pipeline.recover()
            return await real(conn)

        monkeypatch.setattr(_drafts, "list_drafts", always_repaired_underneath)
        with pytest.raises(StorageError) as info:
            await store.list_drafts()
        assert not isinstance(info.value.__cause__, StorageError)
        assert "concurrent repair" in str(info.value)
        assert store.is_open
