import logging
import typing

import mido


logger = logging.getLogger(__name__)


def select_output_device (device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Select and open a MIDI output device.

	With a ``device_name``, opens exactly that device.  Without one:

	- exactly one device - it is used;
	- several devices - the user is asked to pick one on the console;
	- no devices - an error is logged and ``(None, None)`` returned.

	Returns:
		``(device_name, midi_out)`` or ``(None, None)`` on failure.  The
		session keeps running without output in the failure case, so blocks
		can still be edited and diagnosed.
	"""

	try:
		outputs = mido.get_output_names()
		logger.info(f"Available MIDI outputs: {outputs}")

		if not outputs:
			logger.error("No MIDI output devices found.")
			return None, None

		if device_name is not None:

			if device_name not in outputs:
				logger.error(f"MIDI output device '{device_name}' not found. Available devices: {outputs}")
				return None, None

			midi_out = mido.open_output(device_name)
			logger.info(f"Opened MIDI output: {device_name}")
			return device_name, midi_out

		if len(outputs) == 1:
			midi_out = mido.open_output(outputs[0])
			logger.info(f"One MIDI output found - using '{outputs[0]}'")
			return outputs[0], midi_out

		selected = _prompt_choice(outputs)
		midi_out = mido.open_output(selected)
		logger.info(f"Opened MIDI output: {selected}")

		print("\nTip: to skip this prompt, set midi.device_name in config.yaml:\n")
		print(f"  midi:\n    device_name: \"{selected}\"\n")

		return selected, midi_out

	except Exception as e:
		logger.error(f"Failed to open MIDI output: {e}")
		return None, None


def _prompt_choice (outputs: typing.List[str]) -> str:

	print("\nAvailable MIDI output devices:\n")

	for i, name in enumerate(outputs, 1):
		print(f"  {i}. {name}")

	print()

	while True:
		try:
			choice = int(input(f"Select a device (1-{len(outputs)}): "))
			if 1 <= choice <= len(outputs):
				return outputs[choice - 1]
		except (ValueError, EOFError):
			pass
		print(f"Enter a number between 1 and {len(outputs)}.")
