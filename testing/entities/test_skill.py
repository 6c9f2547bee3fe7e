"""测试技能冷却追踪。"""

import numpy as np
import pytest

from automaple.entities.anchor import Anchor, Color
from automaple.entities.skill import (
    SkillCooldown,
    SkillDetecting,
    SkillEntity,
    SkillIdle,
    SkillKind,
    run_system,
)
from automaple.geometry import Point, Rect
from automaple.infra.exceptions import NotFoundError


@pytest.fixture
def skill() -> SkillEntity:
    return SkillEntity(SkillKind.erda_shower)


@pytest.fixture
def frame(resources, fake_detector):
    fake_detector.mat = np.full((50, 50, 3), 200, dtype=np.uint8)
    resources.detector = fake_detector
    return fake_detector


class TestSkillSystem:
    def test_detected_records_anchor(self, resources, frame, skill):
        frame.detect_erda_shower.return_value = Rect(10, 10, 4, 4)

        run_system(resources, skill)
        assert skill.state == SkillDetecting()
        run_system(resources, skill)

        assert skill.state == SkillIdle(Anchor(Point(12, 12), Color(200, 200, 200)))

    def test_not_found_keeps_detecting(self, resources, frame, skill):
        frame.detect_erda_shower.side_effect = NotFoundError("erda_shower")

        run_system(resources, skill)
        run_system(resources, skill)

        assert skill.state == SkillDetecting()

    def test_anchor_changed_enters_cooldown(self, resources, frame, skill):
        skill.state = SkillIdle(Anchor(Point(12, 12), Color(200, 200, 200)))
        frame.mat = np.zeros((50, 50, 3), dtype=np.uint8)

        run_system(resources, skill)

        assert skill.state == SkillCooldown()

    def test_anchor_unchanged_stays_idle(self, resources, frame, skill):
        idle = SkillIdle(Anchor(Point(12, 12), Color(200, 200, 200)))
        skill.state = idle

        run_system(resources, skill)

        assert skill.state == idle
        frame.detect_erda_shower.assert_not_called()

    def test_anchor_out_of_frame(self, resources, frame, skill):
        skill.state = SkillIdle(Anchor(Point(80, 12), Color(200, 200, 200)))

        run_system(resources, skill)

        assert skill.state == SkillDetecting()

    def test_cash_shop_keeps_state(self, resources, frame, skill):
        run_system(resources, skill, in_cash_shop=True)
        frame.detect_erda_shower.assert_not_called()
