from contextlib import contextmanager

import redis

from audiosearch.config import StoreConfig
from audiosearch.errors import StoreError
from audiosearch.fingerprint import fingerprint_audio
from audiosearch.logging_config import setup_logger

# setting up logger
logger = setup_logger(__name__)


def song_key(song_name):
    return StoreConfig.SONG_KEY_TEMPLATE.format(name=song_name)


def create_client(addr=None, db=None):
    """
    Build the process-wide redis client from a "host:port" address.

    decode_responses=True makes set members come back as str.
    """
    addr = addr or StoreConfig.REDIS_ADDR
    host, _, port = addr.rpartition(":")
    if not host:
        host, port = addr, "6379"

    return redis.Redis(
        host=host,
        port=int(port),
        db=StoreConfig.REDIS_DB if db is None else db,
        decode_responses=True,
        socket_timeout=StoreConfig.SOCKET_TIMEOUT,
    )


def check_cancelled(cancel):
    if cancel is not None and cancel.is_set():
        raise StoreError("store operation cancelled")


@contextmanager
def store_operation(description, cancel=None):
    """Run one store call, translating redis failures into StoreError"""
    check_cancelled(cancel)
    try:
        yield
    except redis.RedisError as e:
        logger.error(f"✗ Store error while {description}: {e}")
        raise StoreError(f"{description} failed: {e}") from e


class FingerprintDatabase:
    """
    Fingerprint store on top of redis sets.

    Structure:
        songs:               {song_name, ...}
        song:<name>:hashes:  {"<decimal hash>", ...}

    Every write is a SADD/SREM/DEL so concurrent requests for different
    songs never interfere. Nothing here is transactional: a failure halfway
    through add_song leaves the batches already written in place.

    Every method takes an optional cancel signal (anything with is_set(),
    e.g. threading.Event) that is checked before each store call.
    """

    def __init__(self, client, batch_size=None):
        self.client = client
        self.batch_size = batch_size or StoreConfig.BATCH_SIZE

    def add_song(self, song_name, hashes, replace=False, cancel=None):
        """
        Add a song's hashes and register it in the corpus.

        Re-adding hashes that are already stored is a no-op.

        Args:
            song_name: Unique song key
            hashes: Iterable of integer landmark hashes
            replace: Drop the song's previously stored hashes first
            cancel: Optional cancellation signal

        Returns:
            num_hashes: Number of hashes submitted
        """
        key = song_key(song_name)
        members = [str(h) for h in hashes]

        if replace:
            with store_operation(f"clearing '{song_name}'", cancel):
                self.client.delete(key)

        for start in range(0, len(members), self.batch_size):
            batch = members[start : start + self.batch_size]
            with store_operation(f"storing hashes of '{song_name}'", cancel):
                self.client.sadd(key, *batch)

        with store_operation(f"registering '{song_name}'", cancel):
            self.client.sadd(StoreConfig.SONGS_KEY, song_name)

        logger.info(f"✓ Stored song '{song_name}': {len(members)} hashes")
        return len(members)

    def delete_song(self, song_name, cancel=None):
        """Remove a song's hashes and corpus entry. Unknown names are fine."""
        with store_operation(f"deleting hashes of '{song_name}'", cancel):
            self.client.delete(song_key(song_name))
        with store_operation(f"unregistering '{song_name}'", cancel):
            self.client.srem(StoreConfig.SONGS_KEY, song_name)

        logger.info(f"✓ Deleted song '{song_name}'")

    def list_songs(self, cancel=None):
        """All song names in the corpus, sorted. Empty list if none."""
        with store_operation("listing songs", cancel):
            songs = self.client.smembers(StoreConfig.SONGS_KEY)
        return sorted(songs or [])

    def get_song_hashes(self, song_name, cancel=None):
        """
        Stored hashes of one song.

        Members that are not decimal integers are skipped.

        Returns:
            hashes: set of ints (empty for unknown songs)
        """
        with store_operation(f"reading hashes of '{song_name}'", cancel):
            members = self.client.smembers(song_key(song_name))

        hashes = set()
        for member in members or []:
            try:
                hashes.add(int(member))
            except (TypeError, ValueError):
                logger.warning(f"⚠ Skipping malformed hash {member!r} of '{song_name}'")
        return hashes


def index_audio(song_name, data, database, backend=None, replace=False, cancel=None):
    """
    Fingerprint an audio payload and store it under song_name.

    Nothing is written when decoding or fingerprinting fails.

    Args:
        song_name: Song key
        data: Raw audio bytes
        database: FingerprintDatabase instance
        backend: FFT backend
        replace: Replace any previously stored hashes of this song
        cancel: Optional cancellation signal

    Returns:
        num_hashes: Number of hashes stored
        metadata: Fingerprint metadata
    """
    logger.info(f"Indexing: {song_name}")

    hashes, metadata = fingerprint_audio(data, backend=backend)
    num_hashes = database.add_song(song_name, hashes, replace=replace, cancel=cancel)

    return num_hashes, metadata
