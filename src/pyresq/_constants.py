"""Internal constants shared across the library."""

USER_AGENT = "pyresq/0.1"
GRAPHQL_PREFLIGHT_HEADER = ("GraphQL-Preflight", "1")
GRAPHQL_WS_PROTOCOL = "graphql-transport-ws"

#: Preference key for the emergency type of the last created request.
LAST_SUBCATEGORY_KEY = "last_subcategory_id"

# ------------------------------------------------------------------
# Map pin placement
# ------------------------------------------------------------------

#: Container width (px) from which the wide layout applies.
WIDE_LAYOUT_MIN_WIDTH_PX = 1024
#: Horizontal pin position as a fraction of the container width.
PIN_X_FRACTION = 0.50
PIN_X_FRACTION_WIDE = 0.45
#: Web-Mercator tile size in pixels at zoom 0.
TILE_SIZE_PX = 256

# ------------------------------------------------------------------
# Positioning
# ------------------------------------------------------------------

#: Used when neither the device nor IP geolocation yields a position.
FALLBACK_COORDINATE = (6.9271, 79.8612)
#: Continuous watch: fixes closer than this to the last one are skipped.
MIN_MOVE_METERS = 10.0
#: Route overlay: vehicle moves shorter than this keep the drawn route.
REROUTE_MIN_METERS = 50.0

# ------------------------------------------------------------------
# Google Maps web services
# ------------------------------------------------------------------

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
GEOLOCATE_URL = "https://www.googleapis.com/geolocation/v1/geolocate"
DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"
