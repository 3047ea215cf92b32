# Copyright 2025-2026 Dimensional Inc.
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

import threading

import pytest

_reported_idents: set[int] = set()
_reported_lock = threading.RLock()

# Tests that deliberately leave threads behind opt out with these markers
_unmonitored_markers = ("heavy",)

_GRACE_PERIOD = 0.5


def _live_threads() -> list[threading.Thread]:
    return [t for t in threading.enumerate() if t is not threading.main_thread() and t.is_alive()]


@pytest.fixture(autouse=True)
def monitor_threads(request):
    """Fail the first test that leaves a background thread running."""
    if any(request.node.get_closest_marker(m) for m in _unmonitored_markers):
        yield
        return

    yield

    leftovers = _live_threads()
    for thread in leftovers:
        thread.join(_GRACE_PERIOD / max(len(leftovers), 1))
    leftovers = _live_threads()

    with _reported_lock:
        leaked = [t for t in leftovers if t.ident not in _reported_idents]
        _reported_idents.update(t.ident for t in leftovers if t.ident is not None)

    if leaked:
        pytest.fail(
            f"Test left threads running: {sorted(t.name for t in leaked)}. "
            "Stop or join them before the test returns."
        )
