from scrobble_bridge import run

run()
