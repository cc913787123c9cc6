# Sound-resource URIs (ARI media URIs)

from .uri import (
    sound_uri,
    recording_uri,
    number_uris,
    digits_uris,
    duration_uris,
    datetime_uris,
    wait_uris,
)

__all__ = [
    "sound_uri",
    "recording_uri",
    "number_uris",
    "digits_uris",
    "duration_uris",
    "datetime_uris",
    "wait_uris",
]
