import io

import pytest

from audiosearch.config import AudioConfig
from audiosearch.database import FingerprintDatabase
from main import create_app

from conftest import FlakyRedis, to_pcm16, tone, wav_bytes


@pytest.fixture
def app(database):
    app = create_app(database, backend="scipy")
    app.config["TESTING"] = True
    return app


@pytest.fixture
def http(app):
    return app.test_client()


def upload(data, filename="clip.wav", **fields):
    fields["file"] = (io.BytesIO(data), filename)
    return fields


def test_health(http):
    response = http.get("/health")

    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_fingerprint_and_recognize(http, melody_a_wav):
    response = http.post(
        "/fingerprint",
        data=upload(melody_a_wav, name="A"),
        content_type="multipart/form-data",
    )
    body = response.get_json()

    assert response.status_code == 200
    assert body["song_name"] == "A"
    assert body["hashes"] > 0
    assert body["fft_impl"] == "scipy"

    response = http.post(
        "/recognize", data=upload(melody_a_wav), content_type="multipart/form-data"
    )

    assert response.status_code == 200
    assert response.get_json() == {
        "song_name": "A",
        "confidence": 1.0,
        "fft_impl": "scipy",
    }


def test_custom_fft_routes(http, melody_a_wav):
    response = http.post(
        "/fingerprint/custom?name=A",
        data=upload(melody_a_wav),
        content_type="multipart/form-data",
    )
    assert response.get_json()["fft_impl"] == "custom"

    response = http.post(
        "/recognize/custom", data=upload(melody_a_wav), content_type="multipart/form-data"
    )
    body = response.get_json()

    assert body["song_name"] == "A"
    assert body["confidence"] == 1.0
    assert body["fft_impl"] == "custom"


def test_recognize_without_match(http, melody_a_wav):
    response = http.post(
        "/recognize", data=upload(melody_a_wav), content_type="multipart/form-data"
    )
    body = response.get_json()

    assert response.status_code == 200
    assert body["song_name"] == ""
    assert body["confidence"] == 0
    assert body["message"] == "no match found"


def test_fingerprint_requires_name(http, melody_a_wav):
    response = http.post(
        "/fingerprint", data=upload(melody_a_wav), content_type="multipart/form-data"
    )

    assert response.status_code == 400
    assert response.get_json() == {"error": "song name is required"}


@pytest.mark.parametrize("route", ["/fingerprint?name=A", "/recognize"])
def test_missing_file(http, route):
    response = http.post(route, data={}, content_type="multipart/form-data")

    assert response.status_code == 400
    assert response.get_json() == {"error": "file is required"}


@pytest.mark.parametrize("route", ["/fingerprint?name=A", "/recognize"])
def test_empty_file(http, route):
    response = http.post(route, data=upload(b""), content_type="multipart/form-data")

    assert response.status_code == 400
    assert response.get_json() == {"error": "empty file"}


def test_too_short_is_bad_request(http, database):
    short = wav_bytes(to_pcm16(tone([1000], [0.5], 0.02)))

    response = http.post(
        "/fingerprint?name=A", data=upload(short), content_type="multipart/form-data"
    )

    assert response.status_code == 400
    assert "too short" in response.get_json()["error"]
    assert database.list_songs() == []


def test_malformed_wav_is_bad_request(http):
    data = b"RIFF\x00\x00\x00\x00XXXX" + bytes(8192)

    response = http.post("/recognize", data=upload(data), content_type="multipart/form-data")

    assert response.status_code == 400


def test_store_failure_is_server_error(melody_a_wav):
    http = create_app(FingerprintDatabase(FlakyRedis(ok_calls=0))).test_client()

    response = http.post(
        "/fingerprint?name=A", data=upload(melody_a_wav), content_type="multipart/form-data"
    )

    assert response.status_code == 500
    assert "error" in response.get_json()


def test_delete_and_list(http, melody_a_wav):
    assert http.get("/songs").get_json() == {"songs": []}

    http.post(
        "/fingerprint?name=A", data=upload(melody_a_wav), content_type="multipart/form-data"
    )
    assert http.get("/songs").get_json() == {"songs": ["A"]}

    response = http.delete("/fingerprint/A")
    assert response.get_json() == {"song_name": "A", "deleted": True}
    assert http.get("/songs").get_json() == {"songs": []}

    body = http.post(
        "/recognize", data=upload(melody_a_wav), content_type="multipart/form-data"
    ).get_json()
    assert body["song_name"] == ""


def test_replace_flag(http, database, melody_a_wav, melody_b_wav):
    http.post(
        "/fingerprint?name=A", data=upload(melody_a_wav), content_type="multipart/form-data"
    )
    http.post(
        "/fingerprint?name=A&replace=true",
        data=upload(melody_b_wav),
        content_type="multipart/form-data",
    )

    body = http.post(
        "/recognize", data=upload(melody_a_wav), content_type="multipart/form-data"
    ).get_json()
    assert body["song_name"] == ""


def test_oversized_upload_is_json(app, http):
    app.config["MAX_CONTENT_LENGTH"] = 1024

    response = http.post(
        "/recognize", data=upload(bytes(4096)), content_type="multipart/form-data"
    )

    assert response.status_code == 413
    assert response.get_json() == {"error": "upload exceeds 1024 bytes"}


def test_unknown_fft_backend_rejected_at_startup(database, monkeypatch):
    monkeypatch.setattr(AudioConfig, "FFT_BACKEND", "fftw")

    with pytest.raises(ValueError, match="fftw"):
        create_app(database)

    with pytest.raises(ValueError, match="fftw"):
        create_app(database, backend="fftw")
