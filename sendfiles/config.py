"""
Configuration constants for the LAN file sender.
"""

# --- Networking ---
PORT = 8370                    # TCP port the receiver listens on ('S', 'F')
DISCOVERY_PORT = 8369          # UDP port announcements are sent to
BROADCAST_SOURCE_PORT = 38369  # UDP port announcements are sent from
BUFFER_SIZE = 4 * 1024 * 1024  # Chunk size (bytes) for file content
BROADCAST_INTERVAL = 1         # Seconds between discovery announcements
DISCOVERY_TIMEOUT = 10         # Seconds a sender waits for an announcement
CONNECT_TIMEOUT = 10           # Seconds allowed for the TCP connect

# --- Protocol ---
PROTOCOL_VERSION = 4
STREAM_MAGIC = b"sf-"          # First bytes of every transfer session
ANNOUNCE_MAGIC = b"sf-announce"
AUTO_ADDRESS = "auto"          # Destination token that enables discovery

# --- Paths ---
PATH_SEPARATORS = ("/", "\\")
