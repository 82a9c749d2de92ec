import logging
import os
import typing

import yaml

import soundwords.constants
import soundwords.resolver
import soundwords.session


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_config (config_path: str = "config.yaml") -> dict:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, "r") as f:
		return yaml.safe_load(f) or {}


def make_resolver (config: dict) -> typing.Optional[soundwords.resolver.Resolver]:

	"""
	Build the resolver named by ``resolver.kind`` (``freesound`` or ``directory``), or None.
	"""

	kind = config.get("kind")

	if kind is None:
		return None

	if kind == "freesound":
		return soundwords.resolver.FreesoundResolver(token=config.get("token"))

	if kind == "directory":
		return soundwords.resolver.DirectoryResolver(config.get("path", "./samples"))

	raise ValueError(f"Unknown resolver kind {kind!r} (expected 'freesound' or 'directory')")


def main () -> None:

	"""
	Main entry point: build a session from config.yaml and play it.
	"""

	logger.info("soundwords starting...")

	config = load_config()

	sequencer = config.get("sequencer", {})
	midi = config.get("midi", {})
	resolver_config = config.get("resolver", {})

	session = soundwords.session.Session(
		bpm = sequencer.get("initial_bpm", soundwords.constants.DEFAULT_BPM),
		interval_ms = sequencer.get("interval_ms", soundwords.constants.TICK_INTERVAL_MS),
		output_device = midi.get("device_name"),
		channel = midi.get("channel", soundwords.constants.DEFAULT_MIDI_CHANNEL),
		notes = midi.get("notes"),
		resolver = make_resolver(resolver_config),
		debounce = resolver_config.get("debounce", soundwords.constants.RESOLUTION_DEBOUNCE_SECONDS)
	)

	for index, text in enumerate(config.get("blocks", [])):
		session.block(f"block{index}", text)

	if "live" in config:
		session.live(port=config["live"].get("port", 5555))

	if "osc" in config:
		session.osc(**config["osc"])

	if "web_ui" in config:
		session.web_ui(port=config["web_ui"].get("port", 8765))

	session.play()


if __name__ == "__main__":
	main()
