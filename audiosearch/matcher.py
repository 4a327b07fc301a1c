import time

from audiosearch.config import MatchConfig
from audiosearch.fingerprint import fingerprint_audio
from audiosearch.logging_config import setup_logger

# setting up logger
logger = setup_logger(__name__)


def no_match():
    return {"song_name": "", "similarity": 0.0, "matching_hashes": 0}


def calculate_similarity(query_hashes, stored_hashes):
    """
    Fraction of the query's hashes also present in a stored song.

    Returns:
        similarity: |query ∩ stored| / |query| (0.0 for an empty query)
        matching: |query ∩ stored|
    """
    if not query_hashes:
        return 0.0, 0
    matching = len(query_hashes & stored_hashes)
    return matching / len(query_hashes), matching


def match_query(query_hashes, database, threshold=None, cancel=None):
    """
    Score every song in the corpus against a query fingerprint.

    A song is a candidate when its similarity reaches the threshold; the
    candidate with the strictly highest similarity wins, so ties keep
    whichever song was scanned first.

    The scan is a series of independent reads. Songs stored or deleted
    while it runs may or may not be seen.

    Args:
        query_hashes: Set of landmark hashes from the query
        database: FingerprintDatabase instance
        threshold: Minimum similarity (default: MatchConfig.SIMILARITY_THRESHOLD)
        cancel: Optional cancellation signal for the store calls

    Returns:
        result: Dict with song_name ("" when nothing matched), similarity
            and matching_hashes
    """
    threshold = MatchConfig.SIMILARITY_THRESHOLD if threshold is None else threshold
    query_hashes = set(query_hashes)

    if not query_hashes:
        logger.info("✗ Empty query fingerprint, nothing to match")
        return no_match()

    start_time = time.time()
    songs = database.list_songs(cancel=cancel)

    logger.info(f"Matching {len(query_hashes)} query hashes against {len(songs)} song(s)")

    best = no_match()
    for song_name in songs:
        stored_hashes = database.get_song_hashes(song_name, cancel=cancel)
        similarity, matching = calculate_similarity(query_hashes, stored_hashes)

        logger.debug(f"  '{song_name}': {matching} matching, similarity={similarity:.3f}")

        if similarity >= threshold and similarity > best["similarity"]:
            best = {
                "song_name": song_name,
                "similarity": similarity,
                "matching_hashes": matching,
            }

    elapsed = time.time() - start_time
    if best["song_name"]:
        logger.info(
            f"✓ BEST MATCH: '{best['song_name']}' "
            f"similarity={best['similarity']:.3f} ({elapsed * 1000:.1f} ms)"
        )
    else:
        logger.info(f"✗ NO MATCH FOUND ({elapsed * 1000:.1f} ms)")

    return best


def identify_audio(data, database, backend=None, cancel=None):
    """
    Complete identification pipeline:
    Decode audio → Fingerprint → Match

    Returns:
        result: match_query result plus the query's num_hashes

    Raises:
        DecodeError, TooShortError, StoreError
    """
    query_hashes, metadata = fingerprint_audio(data, backend=backend)
    result = match_query(query_hashes, database, cancel=cancel)
    result["num_hashes"] = metadata["num_hashes"]
    return result
