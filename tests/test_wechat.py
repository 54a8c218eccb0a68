import json

import pytest

from fakes import FakeResponse
from wechat_mdx.config import MEDIA_LOG_FILENAME, WECHAT_UPLOAD_URL
from wechat_mdx.errors import (
    AssetResolutionError,
    ConfigurationError,
    HostProtocolError,
    ResponseParseError,
    UploadError,
)
from wechat_mdx.models import UploadLogEntry
from wechat_mdx.token_cache import AccessTokenCache
from wechat_mdx.wechat import MediaLog, WeChatPublisher

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _token_cache():
    return AccessTokenCache(
        fetcher=lambda app_id, app_secret: {"access_token": "TOKEN", "expires_in": 7200}
    )


def _uploads(session):
    return session.calls_to("POST", WECHAT_UPLOAD_URL)


def _upload_responses(session, *bodies):
    queue = [FakeResponse(json_body=body) for body in bodies]
    session.post_routes[WECHAT_UPLOAD_URL] = lambda: queue.pop(0)


def _log_lines(base_dir):
    path = base_dir / MEDIA_LOG_FILENAME
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


@pytest.fixture
def publisher(session):
    return WeChatPublisher(_token_cache(), session=session, timeout=7)


def test_logged_url_is_reused_without_upload(tmp_path, session, publisher):
    url = "https://cdn.example.com/a.png"
    MediaLog(tmp_path).append(
        [UploadLogEntry(original_url=url, wechat_url="http://mmbiz.qpic.cn/a", media_id="m-a")]
    )
    original_log = (tmp_path / MEDIA_LOG_FILENAME).read_text(encoding="utf-8")

    result = publisher.publish(f"![a]({url})", "id", "secret", base_dir=tmp_path)

    assert result.markdown == "![a](http://mmbiz.qpic.cn/a)"
    assert [item.media_id for item in result.items] == ["m-a"]
    assert _uploads(session) == []
    assert session.calls_to("GET", url) == []
    assert (tmp_path / MEDIA_LOG_FILENAME).read_text(encoding="utf-8") == original_log


def test_remote_image_is_downloaded_uploaded_and_logged(tmp_path, session, publisher):
    url = "https://cdn.example.com/img/b.png"
    session.get_routes[url] = FakeResponse(content=PNG_BYTES)
    _upload_responses(session, {"media_id": "m-b", "url": "http://mmbiz.qpic.cn/b"})

    result = publisher.publish(f"![b]({url}) and ![b]({url})", "id", "secret", base_dir=tmp_path)

    assert result.markdown == "![b](http://mmbiz.qpic.cn/b) and ![b](http://mmbiz.qpic.cn/b)"
    (upload,) = _uploads(session)
    assert upload["params"] == {"access_token": "TOKEN", "type": "image"}
    assert upload["files"]["media"] == ("b.png", PNG_BYTES, "image/png")
    assert upload["timeout"] == 7
    assert (tmp_path / "assets" / "b.png").read_bytes() == PNG_BYTES
    assert _log_lines(tmp_path) == [
        {"original_url": url, "wechat_url": "http://mmbiz.qpic.cn/b", "media_id": "m-b"}
    ]


def test_new_entries_are_appended_after_existing_lines(tmp_path, session, publisher):
    log_path = tmp_path / MEDIA_LOG_FILENAME
    log_path.write_text(
        '{"original_url": "old.png", "wechat_url": "http://w/old", "media_id": "m-old"}\n',
        encoding="utf-8",
    )
    (tmp_path / "new.png").write_bytes(PNG_BYTES)
    _upload_responses(session, {"media_id": "m-new", "url": "http://w/new"})

    result = publisher.publish("![o](old.png) ![n](new.png)", "id", "secret", base_dir=tmp_path)

    assert result.markdown == "![o](http://w/old) ![n](http://w/new)"
    assert [item.original_url for item in result.items] == ["old.png", "new.png"]
    assert [line["media_id"] for line in _log_lines(tmp_path)] == ["m-old", "m-new"]


def test_local_file_is_read_relative_to_base_dir(tmp_path, session, publisher):
    (tmp_path / "pics").mkdir()
    (tmp_path / "pics" / "c.png").write_bytes(PNG_BYTES)
    _upload_responses(session, {"media_id": "m-c", "url": "http://w/c"})

    result = publisher.publish("![c](pics/c.png)", "id", "secret", base_dir=tmp_path)

    assert result.markdown == "![c](http://w/c)"
    assert [call for call in session.calls if call[0] == "GET"] == []
    assert _uploads(session)[0]["files"]["media"][0] == "c.png"


def test_missing_local_file_falls_back_to_site_prefix(tmp_path, session, publisher):
    session.get_routes["https://blog.example.com/images/d.png"] = FakeResponse(content=PNG_BYTES)
    _upload_responses(session, {"media_id": "m-d", "url": "http://w/d"})

    result = publisher.publish(
        "![d](/images/d.png)",
        "id",
        "secret",
        base_dir=tmp_path,
        site_prefix="https://blog.example.com/",
    )

    assert result.markdown == "![d](http://w/d)"
    assert (tmp_path / "assets" / "d.png").read_bytes() == PNG_BYTES


def test_unresolvable_image_names_every_attempt(tmp_path, session, publisher):
    session.get_routes["https://blog.example.com/e.png"] = FakeResponse(status_code=404)

    with pytest.raises(AssetResolutionError) as excinfo:
        publisher.publish(
            "![e](e.png)",
            "id",
            "secret",
            base_dir=tmp_path,
            site_prefix="https://blog.example.com/",
        )

    message = str(excinfo.value)
    assert str(tmp_path / "e.png") in message
    assert "https://blog.example.come.png" not in message
    assert "404" in message
    assert not (tmp_path / MEDIA_LOG_FILENAME).exists()


def test_missing_local_file_without_prefix_fails(tmp_path, session, publisher):
    with pytest.raises(AssetResolutionError, match="site prefix"):
        publisher.publish("![f](f.png)", "id", "secret", base_dir=tmp_path)

    assert _uploads(session) == []


def test_host_error_code_fails_even_with_http_200(tmp_path, session, publisher):
    (tmp_path / "g.png").write_bytes(PNG_BYTES)
    _upload_responses(session, {"errcode": 40007, "errmsg": "invalid media_id"})

    with pytest.raises(HostProtocolError) as excinfo:
        publisher.publish("![g](g.png)", "id", "secret", base_dir=tmp_path)

    assert excinfo.value.errcode == 40007
    assert not (tmp_path / MEDIA_LOG_FILENAME).exists()


def test_http_failure_without_error_code_is_upload_error(tmp_path, session, publisher):
    (tmp_path / "h.png").write_bytes(PNG_BYTES)
    session.post_routes[WECHAT_UPLOAD_URL] = FakeResponse(status_code=502, json_body={})

    with pytest.raises(UploadError, match="502"):
        publisher.publish("![h](h.png)", "id", "secret", base_dir=tmp_path)


def test_upload_response_without_url_is_parse_error(tmp_path, session, publisher):
    (tmp_path / "i.png").write_bytes(PNG_BYTES)
    _upload_responses(session, {"media_id": "m-i"})

    with pytest.raises(ResponseParseError, match="url"):
        publisher.publish("![i](i.png)", "id", "secret", base_dir=tmp_path)


def test_markdown_without_images_is_returned_unchanged(tmp_path, session, publisher):
    result = publisher.publish("# Just text", "id", "secret", base_dir=tmp_path)

    assert result.markdown == "# Just text"
    assert result.items == []
    assert session.calls == []


def test_missing_credentials_is_configuration_error(publisher):
    with pytest.raises(ConfigurationError, match="APPID"):
        publisher.publish("![a](a.png)", "  ", "secret")


def test_blank_arguments_fall_back_to_environment(monkeypatch):
    monkeypatch.setenv("WECHAT_APP_ID", "env-id")
    monkeypatch.setenv("WECHAT_APP_SECRET", "env-secret")
    seen = []

    def fetcher(app_id, app_secret):
        seen.append((app_id, app_secret))
        return {"access_token": "TOKEN", "expires_in": 7200}

    publisher = WeChatPublisher(AccessTokenCache(fetcher=fetcher))
    publisher.publish("no images", " ", "")

    assert seen == [("env-id", "env-secret")]


def test_media_log_skips_malformed_lines(tmp_path):
    (tmp_path / MEDIA_LOG_FILENAME).write_text(
        "not json\n\n"
        '{"original_url": "a", "wechat_url": "w1", "media_id": "m1"}\n'
        '{"original_url": "a"}\n'
        '{"original_url": "a", "wechat_url": "w2", "media_id": "m2"}\n',
        encoding="utf-8",
    )

    entries = MediaLog(tmp_path).load()

    assert list(entries) == ["a"]
    assert entries["a"].wechat_url == "w2"


def test_origin_relative_path_is_read_under_base_dir(tmp_path, session, publisher):
    (tmp_path / "images").mkdir()
    (tmp_path / "images" / "d.png").write_bytes(PNG_BYTES)
    _upload_responses(session, {"media_id": "m-d", "url": "http://w/d"})

    result = publisher.publish("![d](/images/d.png)", "id", "secret", base_dir=tmp_path)

    assert result.markdown == "![d](http://w/d)"
    assert _uploads(session)[0]["files"]["media"][:2] == ("d.png", PNG_BYTES)


def test_files_outside_base_dir_are_never_uploaded(tmp_path, session, publisher):
    doc_dir = tmp_path / "doc"
    doc_dir.mkdir()
    secret = tmp_path / "secret.png"
    secret.write_bytes(PNG_BYTES)

    with pytest.raises(AssetResolutionError, match="outside"):
        publisher.publish("![x](../secret.png)", "id", "secret", base_dir=doc_dir)
    with pytest.raises(AssetResolutionError):
        publisher.publish(f"![x]({secret})", "id", "secret", base_dir=doc_dir)

    assert _uploads(session) == []


def test_append_starts_new_line_after_unterminated_log(tmp_path):
    (tmp_path / MEDIA_LOG_FILENAME).write_text(
        '{"original_url": "a", "wechat_url": "w1", "media_id": "m1"}', encoding="utf-8"
    )

    MediaLog(tmp_path).append(
        [UploadLogEntry(original_url="b", wechat_url="w2", media_id="m2")]
    )

    entries = MediaLog(tmp_path).load()
    assert sorted(entries) == ["a", "b"]
    assert (tmp_path / MEDIA_LOG_FILENAME).read_text(encoding="utf-8").endswith("\n")
