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

"""Tests for the scenario-aware console proxy."""

import io
import threading

from rich.console import Console

from capi_e2e import ScenarioConsole


def _console():
    out = io.StringIO()
    return ScenarioConsole(Console(file=out, width=60, color_system=None)), out


class TestScenarioConsole:

    def test_prints_straight_through_without_capture(self):
        proxy, out = _console()
        proxy.print("hello")
        assert out.getvalue() == "hello\n"

    def test_capture_holds_output_until_replayed(self):
        proxy, out = _console()
        with proxy.capture("create default/c1") as transcript:
            proxy.print("[green]accepted[/green]")
        assert out.getvalue() == ""
        assert transcript.text == "accepted\n"

        proxy.replay([transcript])
        lines = out.getvalue().splitlines()
        assert "create default/c1" in lines[0]
        assert lines[1:] == ["accepted"]

    def test_capture_is_per_thread(self):
        proxy, out = _console()
        transcripts = {}
        ready = threading.Barrier(2)

        def _worker(label):
            with proxy.capture(label) as transcript:
                ready.wait(timeout=5)
                for n in range(3):
                    proxy.print(f"{label} line {n}")
            transcripts[label] = transcript

        workers = [threading.Thread(target=_worker, args=(label,)) for label in ("a", "b")]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=5)

        assert out.getvalue() == ""
        assert transcripts["a"].text.splitlines() == ["a line 0", "a line 1", "a line 2"]
        assert transcripts["b"].text.splitlines() == ["b line 0", "b line 1", "b line 2"]

    def test_replay_keeps_brackets_literal_and_skips_empty(self):
        proxy, out = _console()
        with proxy.capture("quiet") as quiet:
            pass
        with proxy.capture("noisy") as noisy:
            proxy.print("retry [2/3]", markup=False)
        proxy.replay([quiet, noisy])
        text = out.getvalue()
        assert "quiet" not in text
        assert "retry [2/3]" in text
