"""BlueZ and D-Bus names used by the player bridge."""

# BlueZ D-Bus service and interface names
BLUEZ_SERVICE = "org.bluez"
ADAPTER_INTERFACE = "org.bluez.Adapter1"
MEDIA_INTERFACE = "org.bluez.Media1"
OBJECT_MANAGER_INTERFACE = "org.freedesktop.DBus.ObjectManager"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

REGISTER_PLAYER_METHOD = "RegisterPlayer"
UNREGISTER_PLAYER_METHOD = "UnregisterPlayer"

# Message bus daemon
DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_INTERFACE = "org.freedesktop.DBus"

# Error names that mean "BlueZ is simply not running"
SERVICE_ABSENT_ERRORS = frozenset({
    "org.freedesktop.DBus.Error.ServiceUnknown",
    "org.freedesktop.DBus.Error.NameHasNoOwner",
})

# Object path the proxy player is exported at and registered under
PLAYER_PATH = "/org/mpris/MediaPlayer2"
