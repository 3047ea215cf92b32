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

import pytest

from armflow.msgs.sensor_msgs import JointState


def test_joint_state_lookup():
    state = JointState(name=["a", "b"], position=[1, 2])
    assert state.position == [1.0, 2.0]
    assert state.as_dict() == {"a": 1.0, "b": 2.0}
    assert state.get_position("b") == 2.0
    assert len(state) == 2


def test_joint_state_optional_lists():
    """Velocity and effort may be omitted, but not given with the wrong length."""
    assert JointState(name=["a"], position=[0.0]).velocity == []
    with pytest.raises(ValueError):
        JointState(name=["a", "b"], position=[0.0])
    with pytest.raises(ValueError):
        JointState(name=["a"], position=[0.0], velocity=[0.0, 1.0])
