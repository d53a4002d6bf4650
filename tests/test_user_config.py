import base64
import gzip
import json

import pytest

from app.user_config import InvalidConfig, UserConfig, decode_config, encode_config


def test_config_round_trips_through_the_url_segment():
    payload = {"apiKey": "mdb-key", "listOrder": ["b", "a"], "hiddenLists": "x, y"}

    config = UserConfig.from_segment(encode_config(payload))

    assert config.api_key == "mdb-key"
    assert config.list_order == ["b", "a"]
    assert config.hidden_lists == ["x", "y"]
    assert config.metadata_source == "cinemeta"
    assert config.tmdb_language == "en-US"


def test_gzip_compressed_segments_are_accepted():
    raw = gzip.compress(json.dumps({"metadataSource": "TMDB"}).encode("utf-8"))
    segment = base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")

    config = UserConfig.from_segment(segment)

    assert config.metadata_source == "tmdb"


def test_compressed_encoding_decodes_to_the_same_payload():
    payload = {"rpdbApiKey": "t0-free-rpdb", "mergedLists": {"aiolists-1-L": False}}

    assert decode_config(encode_config(payload, compress=True)) == payload


@pytest.mark.parametrize(
    "segment",
    [
        "",
        "%%%not-base64%%%",
        base64.urlsafe_b64encode(b"not json").decode("ascii"),
        base64.urlsafe_b64encode(b"[1, 2]").decode("ascii"),
    ],
)
def test_undecodable_segments_raise_invalid_config(segment):
    with pytest.raises(InvalidConfig):
        decode_config(segment)


def test_blank_credentials_are_treated_as_missing():
    config = UserConfig.model_validate(
        {"apiKey": "  ", "traktAccessToken": "", "tmdbSessionId": None}
    )

    assert config.api_key is None
    assert config.has_trakt() is False
    assert config.has_tmdb_session() is False


def test_lists_are_merged_unless_switched_off():
    config = UserConfig.model_validate(
        {"mergedLists": {"aiolists-1-L": False, "aiolists-2-L": True}}
    )

    assert config.is_merged("aiolists-1-L") is False
    assert config.is_merged("aiolists-2-L") is True
    assert config.is_merged("aiolists-3-L") is True


def test_primary_failure_policy_falls_back_to_server_default():
    assert UserConfig().primary_failure_policy("fallback") == "fallback"
    assert (
        UserConfig.model_validate({"onPrimaryFailure": "leaveUnenriched"}).primary_failure_policy(
            "fallback"
        )
        == "leaveUnenriched"
    )


def test_imported_addons_keep_their_key_as_id():
    config = UserConfig.model_validate(
        {
            "importedAddons": {
                "mdblisturl_123": {
                    "name": "Top Horror",
                    "isMDBListUrlImport": True,
                    "mdblistId": 123,
                    "hasMovies": True,
                },
                "broken": "not an object",
            }
        }
    )

    imported = config.imported_addons["mdblisturl_123"]
    assert list(config.imported_addons) == ["mdblisturl_123"]
    assert imported.id == "mdblisturl_123"
    assert imported.mdblist_id == "123"
    assert imported.is_url_import is True
    assert imported.to_payload() == {
        "id": "mdblisturl_123",
        "name": "Top Horror",
        "isMDBListUrlImport": True,
        "isTraktPublicList": False,
        "mdblistId": "123",
        "hasMovies": True,
        "hasShows": False,
    }


def test_sort_preferences_normalise_order():
    config = UserConfig.model_validate(
        {"sortPreferences": {"42": {"sort": "released", "order": "DESC"}}}
    )

    assert config.sort_preference("42").order == "desc"
    assert config.sort_preference("missing").sort is None
