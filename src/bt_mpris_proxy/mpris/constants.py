"""MPRIS D-Bus names."""

MPRIS_PATH = "/org/mpris/MediaPlayer2"
MPRIS_BUS_PREFIX = "org.mpris.MediaPlayer2."
MPRIS_ROOT_INTERFACE = "org.mpris.MediaPlayer2"
MPRIS_PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"

# D-Bus property name → MirrorState / controller field
ROOT_PROPERTIES = {
    "Identity": "identity",
}

PLAYER_PROPERTIES = {
    "Metadata": "metadata",
    "Position": "position",
    "CanControl": "can_control",
    "CanGoNext": "can_go_next",
    "CanGoPrevious": "can_go_previous",
    "CanPause": "can_pause",
    "CanPlay": "can_play",
    "CanSeek": "can_seek",
    "MinimumRate": "minimum_rate",
    "MaximumRate": "maximum_rate",
    "Rate": "rate",
    "LoopStatus": "loop_status",
    "Shuffle": "shuffle",
    "Volume": "volume",
    "PlaybackStatus": "playback_status",
}

INVALID_ARGUMENT_ERROR = "org.mpris.MediaPlayer2.Error.InvalidArgument"
