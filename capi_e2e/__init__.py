# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""capi_e2e - lifecycle convergence checks for Cluster API managed clusters."""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Iterable
from contextlib import contextmanager
from dataclasses import dataclass, field

from rich.console import Console
from rich.text import Text


@dataclass
class ScenarioTranscript:
    """Console output one scenario produced while it was captured."""

    label: str
    buffer: io.StringIO = field(default_factory=io.StringIO)

    @property
    def text(self) -> str:
        return self.buffer.getvalue()


class ScenarioConsole:
    """Console proxy that keeps each concurrent scenario's output together.

    While a worker thread is inside ``capture(label)`` everything it prints
    lands in that scenario's transcript. ``replay`` prints finished
    transcripts one block at a time, each under a rule naming its scenario.
    """

    def __init__(self, real_console: Console) -> None:
        object.__setattr__(self, "_real", real_console)
        object.__setattr__(self, "_local", threading.local())

    def __getattr__(self, name: str):
        target = getattr(self._local, "console", self._real)
        return getattr(target, name)

    @contextmanager
    def capture(self, label: str):
        """Send the current thread's output to a new transcript for ``label``."""
        transcript = ScenarioTranscript(label)
        self._local.console = Console(file=transcript.buffer, width=self._real.width)
        try:
            yield transcript
        finally:
            del self._local.console

    def replay(self, transcripts: Iterable[ScenarioTranscript]) -> None:
        for transcript in transcripts:
            if not transcript.text:
                continue
            self._real.rule(transcript.label, style="dim")
            # Already rendered; printing as Text keeps brackets from being read as markup.
            self._real.print(Text(transcript.text), end="")


console = ScenarioConsole(Console(stderr=True))
logger = logging.getLogger("capi_e2e")
