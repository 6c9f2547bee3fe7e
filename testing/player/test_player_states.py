"""测试玩家状态的更新函数。"""

import pytest

from automaple.entities.anchor import Anchor, Color
from automaple.entities.minimap import MinimapIdle, Threshold
from automaple.geometry import Point, Rect
from automaple.infra.exceptions import NotFoundError, StateProtocolError
from automaple.models.actions import Position
from automaple.player.actions import (
    AutoMob,
    Chat,
    ExchangeBooster,
    Key,
    MobbingKeyTicks,
    Move,
    SolveRune,
    Unstuck,
    UseBooster,
)
from automaple.player.adjust import update_adjusting_state
from automaple.player.booster import (
    exchanging_booster,
    update_exchanging_booster_state,
    update_using_booster_state,
)
from automaple.player.cash_shop import update_cash_shop_state
from automaple.player.chat import chatting, update_chatting_state
from automaple.player.context import AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT
from automaple.player.double_jump import update_double_jumping_state
from automaple.player.fall import update_falling_state
from automaple.player.familiars_swap import update_familiars_swapping_state
from automaple.player.grapple import update_grappling_state
from automaple.player.idle import update_idle_state, x_destination
from automaple.player.jump import update_jumping_state, update_up_jumping_state
from automaple.player.moving import update_moving_state
from automaple.player.panic import update_panicking_state
from automaple.player.solve_rune import update_solving_rune_state
from automaple.player.stall import update_stalling_state
from automaple.player.state import (
    BoosterPhase,
    ChatPhase,
    Chatting,
    Detecting,
    ExchangePhase,
    ExchangingBooster,
    Idle,
    Jumping,
    Movement,
    Moving,
    RunePhase,
    SolvingRune,
    Stalling,
    Unstucking,
    UseKey,
    UseKeyStage,
    UsingBooster,
    can_override_current_state,
)
from automaple.player.unstuck import update_unstucking_state
from automaple.player.use_key import update_use_key_state
from automaple.resources import Rng
from automaple.timeout import Timeout
from automaple.types import ActionKeyDirection, ActionKeyWith, BoosterKind, KeyKind

ANCHOR = Anchor(Point(0, 0), Color(0, 0, 0))


def _minimap(**kwargs) -> MinimapIdle:
    return MinimapIdle(tl_anchor=ANCHOR, br_anchor=ANCHOR, bbox=Rect(0, 0, 100, 50), **kwargs)


def _run(update, times: int) -> None:
    for _ in range(times):
        update()


def _with_config(context, **changes):
    """替换上下文中的配置，其余状态保留。"""
    context.config = context.config.model_copy(update=changes)
    return context


class TestCanOverride:
    @pytest.mark.parametrize("state", [Idle(), Detecting()])
    def test_idle_states(self, state):
        assert can_override_current_state(state, None)

    def test_terminal_states(self):
        assert not can_override_current_state(Stalling(Timeout(), 3), None)
        assert not can_override_current_state(UseKey(KeyKind.A), None)
        assert not can_override_current_state(chatting("hi"), None)

    def test_moving_far_from_destination(self):
        moving = Moving(Point(100, 0))
        assert can_override_current_state(moving, None)
        assert can_override_current_state(moving, Point(0, 0))
        assert not can_override_current_state(moving, Point(99, 0))


# ── Idle ──


class TestIdle:
    def test_no_action_stays_idle(self, resources, player, fake_input):
        update_idle_state(resources, player, _minimap())
        assert player.state == Idle()
        fake_input.send_key_up.assert_any_call(KeyKind.Left)

    def test_key_without_position(self, resources, player):
        player.context.set_normal_action(0, Key(KeyKind.A))
        update_idle_state(resources, player, _minimap())
        assert isinstance(player.state, UseKey)
        assert player.state.key is KeyKind.A

    def test_move_action(self, resources, player):
        player.context.set_normal_action(0, Move(Position(x=30, y=10)))
        update_idle_state(resources, player, _minimap())
        assert player.state == Moving(Point(30, 10), False)

    def test_priority_before_normal(self, resources, player):
        player.context.set_normal_action(0, Move(Position(x=30, y=10)))
        player.context.set_priority_action(1, Unstuck())
        update_idle_state(resources, player, _minimap())
        assert isinstance(player.state, Unstucking)

    def test_solve_rune_moves_to_rune(self, resources, player):
        player.context.set_priority_action(0, SolveRune())
        minimap = _minimap(rune_threshold=Threshold(3, value=Point(20, 10)))
        update_idle_state(resources, player, minimap)
        assert player.state == Moving(Point(20, 10), False)

    def test_solve_rune_without_rune_completes(self, resources, player):
        player.context.set_priority_action(0, SolveRune())
        update_idle_state(resources, player, _minimap())
        assert player.state == Idle()
        assert not player.context.has_priority_action()

    def test_booster_actions(self, resources, player):
        player.context.set_priority_action(0, UseBooster(BoosterKind.hexa))
        update_idle_state(resources, player, _minimap())
        assert player.state == UsingBooster(BoosterKind.hexa)

        player.context.set_priority_action(1, ExchangeBooster(5, False))
        update_idle_state(resources, player, _minimap())
        assert isinstance(player.state, ExchangingBooster)

    @pytest.mark.parametrize("x, spread", [(10, 0), (10, 3), (1, 5)])
    def test_x_destination_within_range(self, x, spread):
        rng = Rng(7)
        for _ in range(20):
            dest = x_destination(rng, Position(x=x, y=0, x_random_range=spread))
            assert max(x - spread, 0) <= dest <= x + spread


# ── UseKey ──


class TestUseKey:
    def _start(self, resources, player, key: Key) -> None:
        player.context.set_priority_action(0, key)
        player.state = UseKey.from_key(key, resources.rng)

    def test_count_then_complete(self, resources, player, fake_input):
        """使用两次后完成动作并回到 Idle。"""
        self._start(resources, player, Key(KeyKind.A, count=2))

        _run(lambda: update_use_key_state(resources, player, _minimap()), 6)

        assert player.state == Idle()
        assert not player.context.has_priority_action()
        sent = [call.args[0] for call in fake_input.send_key.call_args_list]
        assert sent == [KeyKind.A, KeyKind.A]

    def test_wait_before_stalls(self, resources, player, fake_input):
        self._start(resources, player, Key(KeyKind.A, wait_before_use_ticks=4))

        update_use_key_state(resources, player, _minimap())

        assert player.state == Stalling(Timeout(), 4)
        resume = player.context.stalling_timeout_state
        assert isinstance(resume, UseKey)
        assert resume.stage is UseKeyStage.using
        fake_input.send_key.assert_not_called()

    def test_wait_after_stalls(self, resources, player):
        self._start(resources, player, Key(KeyKind.A, wait_after_use_ticks=3))

        _run(lambda: update_use_key_state(resources, player, _minimap()), 2)

        assert player.state == Stalling(Timeout(), 3)
        assert player.context.stalling_timeout_state.stage is UseKeyStage.postcondition

    def test_changes_direction_first(self, resources, player, fake_input):
        self._start(resources, player, Key(KeyKind.A, direction=ActionKeyDirection.left))

        update_use_key_state(resources, player, _minimap())
        assert player.state.stage is UseKeyStage.changing_direction

        update_use_key_state(resources, player, _minimap())
        fake_input.send_key.assert_called_once_with(KeyKind.Left)

    def test_key_hold(self, resources, player, fake_input):
        self._start(resources, player, Key(KeyKind.A, key_hold_ticks=5))

        _run(lambda: update_use_key_state(resources, player, _minimap()), 2)

        fake_input.send_key_down.assert_called_once_with(KeyKind.A)
        assert player.state == Stalling(Timeout(), 5)
        assert player.context.stalling_timeout_state.key_holding


# ── Stalling ──


class TestStalling:
    def test_resumes_saved_state(self, player):
        resume = UseKey(KeyKind.A, stage=UseKeyStage.using)
        player.context.stalling_timeout_state = resume
        player.state = Stalling(Timeout(), 2)

        _run(lambda: update_stalling_state(player), 3)

        assert player.state == resume
        assert player.context.stalling_timeout_state is None

    def test_completes_move_action(self, player):
        player.context.set_normal_action(0, Move(Position(x=1, y=1)))
        player.state = Stalling(Timeout(), 1)

        _run(lambda: update_stalling_state(player), 2)

        assert player.state == Idle()
        assert not player.context.has_normal_action()

    def _auto_mob(self, player, y: int) -> AutoMob:
        mob = AutoMob(MobbingKeyTicks(KeyKind.A), Position(x=40, y=y))
        player.context.set_normal_action(None, mob)
        return mob

    def test_auto_mob_missed_target_y_decays(self, player):
        """落脚点与目标 y 不同时，目标 y 计数减一，落脚点计数加一。"""
        self._auto_mob(player, 30)
        context = player.context
        context.last_known_pos = Point(40, 20)
        context.auto_mob_reachable_y_map = {30: 3, 20: 3}
        player.state = Stalling(Timeout(), 1)

        _run(lambda: update_stalling_state(player), 2)

        assert context.auto_mob_reachable_y_map == {30: 2, 20: 3 + 1}
        assert player.state == Idle()
        assert not context.has_normal_action()

    def test_auto_mob_reached_target_y(self, player):
        self._auto_mob(player, 20)
        context = player.context
        context.last_known_pos = Point(40, 20)
        context.auto_mob_reachable_y_map = {20: 1}
        player.state = Stalling(Timeout(), 1)

        _run(lambda: update_stalling_state(player), 2)

        assert context.auto_mob_reachable_y_map == {20: 2}

    def test_auto_mob_use_key_then_stall_tracks_y(self, resources, player, fake_input):
        """打怪按键结束后先停顿等待落稳，停顿结束时更新目标 y。"""
        mob = self._auto_mob(player, 30)
        context = player.context
        context.last_known_pos = Point(40, 20)
        context.auto_mob_reachable_y_map = {30: 1, 20: AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT}
        player.state = UseKey.from_auto_mob(mob, ActionKeyDirection.any, True, resources.rng)

        for _ in range(10):
            update_use_key_state(resources, player, _minimap())
            if isinstance(player.state, Stalling):
                break
        assert isinstance(player.state, Stalling)
        fake_input.send_key.assert_called_once_with(KeyKind.A)

        for _ in range(player.state.max_timeout + 1):
            update_stalling_state(player)

        assert player.state == Idle()
        assert 30 not in context.auto_mob_reachable_y_map
        assert context.auto_mob_reachable_y_map[20] == AUTO_MOB_REACHABLE_Y_SOLIDIFY_COUNT
        assert not context.has_normal_action()


# ── Chatting ──


class TestChatting:
    def test_unsupported_characters_dropped(self):
        assert chatting("a b!").keys == (KeyKind.A, KeyKind.Space, KeyKind.B)

    def test_content_truncated(self):
        assert len(chatting("a" * 300).keys) == 100

    def test_full_flow(self, resources, player, fake_input, fake_detector):
        fake_detector.detect_chat_menu_opened.side_effect = [True, False]
        player.context.set_priority_action(None, Chat("hi"))
        player.state = chatting("hi")

        for _ in range(100):
            update_chatting_state(resources, player)
            if player.state == Idle():
                break

        assert player.state == Idle()
        assert not player.context.has_priority_action()
        sent = [call.args[0] for call in fake_input.send_key.call_args_list]
        assert sent == [KeyKind.Enter, KeyKind.H, KeyKind.I, KeyKind.Enter]

    def test_menu_never_opens(self, resources, player, fake_detector):
        fake_detector.detect_chat_menu_opened.return_value = False
        player.state = chatting("x")

        for _ in range(200):
            update_chatting_state(resources, player)
            if player.state == Idle():
                break

        assert player.state == Idle()
        assert fake_detector.detect_chat_menu_opened.call_count == 5

    def test_typing_advances_key_index(self, resources, player):
        player.state = Chatting(keys=(KeyKind.A, KeyKind.B), phase=ChatPhase.typing)
        _run(lambda: update_chatting_state(resources, player), 3)
        assert player.state.key_index == 1


# ── SolvingRune ──


class TestSolvingRune:
    def test_without_action_cancels(self, resources, player):
        player.state = SolvingRune()
        update_solving_rune_state(resources, player)
        assert player.state == Idle()

    def test_precondition_requires_stationary(self, resources, player):
        player.context.set_priority_action(0, SolveRune())
        player.state = SolvingRune()

        _run(lambda: update_solving_rune_state(resources, player), 30)

        assert player.state.phase is RunePhase.precondition

    def test_full_flow_starts_validation(self, resources, player, fake_input, fake_detector):
        arrows = (KeyKind.Up, KeyKind.Down, KeyKind.Left, KeyKind.Right)
        fake_detector.detect_rune_arrows.side_effect = [NotFoundError("arrows"), arrows]
        player.context.set_priority_action(0, SolveRune())
        player.context.is_stationary = True
        player.state = SolvingRune()

        for _ in range(500):
            update_solving_rune_state(resources, player)
            if player.state == Idle():
                break

        assert player.state == Idle()
        assert player.context.is_validating_rune()
        assert not player.context.has_priority_action()
        sent = [call.args[0] for call in fake_input.send_key.call_args_list]
        assert sent == [KeyKind.Space, *arrows]


# ── 加速器 ──


class TestBooster:
    def test_missing_key_counts_failure(self, resources, player):
        player.context.set_priority_action(0, UseBooster(BoosterKind.generic))
        player.state = UsingBooster(BoosterKind.generic)

        for _ in range(50):
            update_using_booster_state(resources, player)
            if player.state == Idle():
                break

        assert player.state == Idle()
        assert player.context.generic_booster_failed_count == 1
        assert not player.context.has_priority_action()

    def test_confirm_flow_clears_failures(self, resources, player, fake_input, fake_detector):
        player.context = _with_config(player.context, generic_booster_key=KeyKind.G)
        player.context.generic_booster_failed_count = 2
        fake_detector.detect_admin_visible.return_value = True
        fake_detector.detect_esc_settings.return_value = False
        player.context.set_priority_action(0, UseBooster(BoosterKind.generic))
        player.state = UsingBooster(BoosterKind.generic)

        for _ in range(200):
            update_using_booster_state(resources, player)
            if player.state == Idle():
                break

        assert player.state == Idle()
        assert player.context.generic_booster_failed_count == 0
        sent = [call.args[0] for call in fake_input.send_key.call_args_list]
        assert sent == [KeyKind.G, KeyKind.Left, KeyKind.Left, KeyKind.Enter]

    def test_exchange_amount_keys(self):
        assert exchanging_booster(12, False).amount_keys == (
            KeyKind.Backspace,
            KeyKind.Backspace,
            KeyKind.One,
            KeyKind.Two,
        )
        assert exchanging_booster(99, False).amount_keys[-2:] == (KeyKind.Two, KeyKind.Zero)
        assert exchanging_booster(5, True).amount_keys is None

    def test_exchange_without_menu_completes(self, resources, player, fake_detector):
        fake_detector.detect_hexa_quick_menu.side_effect = NotFoundError("hexa menu")
        player.context.set_priority_action(0, ExchangeBooster(1, True))
        player.state = exchanging_booster(1, True)

        update_exchanging_booster_state(resources, player)

        assert player.state == Idle()
        assert not player.context.has_priority_action()

    def test_exchange_stops_when_button_missing(self, resources, player, fake_detector):
        fake_detector.detect_hexa_quick_menu.return_value = Rect(0, 0, 10, 10)
        fake_detector.detect_hexa_erda_conversion_button.side_effect = NotFoundError("button")
        player.context.set_priority_action(0, ExchangeBooster(1, True))
        player.state = exchanging_booster(1, True)

        for _ in range(100):
            update_exchanging_booster_state(resources, player)
            if player.state == Idle():
                break

        assert player.state == Idle()
        fake_detector.detect_hexa_booster_button.assert_not_called()

    def test_booster_phase_progression(self, resources, player, fake_detector):
        player.context = _with_config(player.context, hexa_booster_key=KeyKind.H)
        fake_detector.detect_admin_visible.return_value = True
        player.context.set_priority_action(0, UseBooster(BoosterKind.hexa))
        player.state = UsingBooster(BoosterKind.hexa)

        phases = set()
        for _ in range(200):
            update_using_booster_state(resources, player)
            if player.state == Idle():
                break
            phases.add(player.state.phase)

        assert phases == {BoosterPhase.using, BoosterPhase.confirming, BoosterPhase.completing}

    def test_exchange_phases(self, resources, player, fake_detector):
        button = Rect(0, 0, 10, 10)
        for name in (
            "detect_hexa_quick_menu",
            "detect_hexa_erda_conversion_button",
            "detect_hexa_booster_button",
            "detect_hexa_max_button",
            "detect_hexa_convert_button",
        ):
            getattr(fake_detector, name).return_value = button
        fake_detector.detect_esc_settings.return_value = False
        player.context.set_priority_action(0, ExchangeBooster(3, False))
        player.state = exchanging_booster(3, False)

        phases = []
        for _ in range(500):
            update_exchanging_booster_state(resources, player)
            if player.state == Idle():
                break
            if player.state.phase not in phases:
                phases.append(player.state.phase)

        assert player.state == Idle()
        assert phases == list(ExchangePhase)



# ── 状态协议 ──


_WRONG_STATE_UPDATES = [
    pytest.param(lambda r, p, m: update_use_key_state(r, p, m), id="use_key"),
    pytest.param(lambda r, p, m: update_stalling_state(p), id="stalling"),
    pytest.param(lambda r, p, m: update_moving_state(r, p, m), id="moving"),
    pytest.param(lambda r, p, m: update_adjusting_state(r, p, m), id="adjusting"),
    pytest.param(lambda r, p, m: update_double_jumping_state(r, p, m), id="double_jumping"),
    pytest.param(lambda r, p, m: update_jumping_state(r, p), id="jumping"),
    pytest.param(lambda r, p, m: update_up_jumping_state(r, p, m), id="up_jumping"),
    pytest.param(lambda r, p, m: update_grappling_state(r, p, m), id="grappling"),
    pytest.param(lambda r, p, m: update_falling_state(r, p, m), id="falling"),
    pytest.param(lambda r, p, m: update_unstucking_state(r, p, m), id="unstucking"),
    pytest.param(lambda r, p, m: update_solving_rune_state(r, p), id="solving_rune"),
    pytest.param(lambda r, p, m: update_chatting_state(r, p), id="chatting"),
    pytest.param(lambda r, p, m: update_panicking_state(r, p, m), id="panicking"),
    pytest.param(lambda r, p, m: update_using_booster_state(r, p), id="using_booster"),
    pytest.param(lambda r, p, m: update_exchanging_booster_state(r, p), id="exchanging_booster"),
    pytest.param(lambda r, p, m: update_cash_shop_state(r, p, False), id="cash_shop"),
    pytest.param(lambda r, p, m: update_familiars_swapping_state(r, p), id="familiars_swapping"),
]


class TestStateProtocol:
    @pytest.mark.parametrize("update", _WRONG_STATE_UPDATES)
    def test_wrong_state_raises(self, resources, player, update):
        """在不匹配的状态上调用更新函数直接抛出，不做任何转移。"""
        player.state = Idle()

        with pytest.raises(StateProtocolError) as exc_info:
            update(resources, player, _minimap())

        assert exc_info.value.actual == Idle()
        assert player.state == Idle()

    def test_positional_state_requires_position(self, resources, player):
        player.state = Jumping(Movement(Point(0, 0), Point(0, 0)))

        with pytest.raises(StateProtocolError):
            update_jumping_state(resources, player)

    def test_idle_double_jump_key_requires_position(self, resources, player):
        player.context.set_priority_action(0, Key(KeyKind.A, with_=ActionKeyWith.double_jump))

        with pytest.raises(StateProtocolError):
            update_idle_state(resources, player, _minimap())
