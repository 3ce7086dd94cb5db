"""Media album taxonomy manager: hierarchy store, tree serializer, sync protocol and tree editor."""
