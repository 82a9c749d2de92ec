"""
soundwords - a live-coding language for probabilistic, tempo-synchronised sound sequences.

Type words, hear sounds.  Every word that is not a variable or a function
is a sound: it is looked up (on freesound.org or in a local folder) while
you keep typing, and starts playing the moment it arrives.  Source text is
split into blocks; editing a block re-interprets just that block, and the
music never stops while you do.

The language, in one block each:

- ``kick snare kick snare`` - a sequence, one beat per sound
- ``x = kick*4`` - a variable; ``4*kick`` works too
- ``kick | (3) snare`` - a weighted random choice, redrawn every cycle
- ``kick [hat hat hat]`` - squeeze a group into a single beat
- ``(kick snare).volume(level: 0.5)`` - chain effects onto sounds or groups
- ``"dog bark"(max: 2)`` - multi-word sounds and search parameters
- ``_`` - a rest

Pieces:

- **Analysis.** A one-pass semantic analyzer tags every token and reports
  errors inline without giving up on the rest of the block.
- **Symbols.** A symbol table tracks variables, functions and sounds
  across blocks, resolves sounds asynchronously after a short debounce,
  and forgets identifiers no block mentions any more.
- **Automata.** Each variable becomes a small generative automaton of
  sequences, weighted choices and single steps.
- **Scheduling.** One timer advances every variable in lockstep with the
  tempo and sends steps to MIDI.
- **Integration.** A TCP live server for editors, OSC transport control,
  a WebSocket status feed, and MIDI-file recording.

Minimal example:

    ```python
    import soundwords

    session = soundwords.Session(bpm=120)
    session.block("drums", "kick snare [hat hat] snare")
    session.block("fill", "x = kick*3 | (2) clap")
    session.play()
    ```

Package-level exports: ``Session``, ``Interpreter``, ``SymbolTable``, ``Memory``, ``Scheduler``.
"""

import soundwords.interpreter
import soundwords.memory
import soundwords.scheduler
import soundwords.session
import soundwords.symbols


Session = soundwords.session.Session
Interpreter = soundwords.interpreter.Interpreter
SymbolTable = soundwords.symbols.SymbolTable
Memory = soundwords.memory.Memory
Scheduler = soundwords.scheduler.Scheduler
