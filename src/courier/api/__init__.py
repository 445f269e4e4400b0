"""HTTP and websocket API surfaces."""
