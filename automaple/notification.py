"""Discord Webhook 通知推送。

通知是"发出即忘"的：:meth:`DiscordNotification.schedule_notification` 只负责
把请求提交到后台线程，同一种类的通知在发送完成前不会重复提交。
发送失败只记录日志，不影响主循环。

使用方式::

    notification = DiscordNotification(config.notification)
    notification.schedule_notification(NotificationKind.rune_appeared, frame=detector.mat)
"""

from __future__ import annotations

import threading
from concurrent.futures import Executor, ThreadPoolExecutor

import cv2
import numpy as np
import requests
from loguru import logger

from automaple.infra.config import NotificationConfig
from automaple.infra.exceptions import NotificationError
from automaple.types import NotificationKind

_USERNAME = "automaple"

_CONTENTS: dict[NotificationKind, str] = {
    NotificationKind.fail_or_map_changed: "识别失败或地图已变化，机器人已停止",
    NotificationKind.rune_appeared: "地图上出现了符文",
    NotificationKind.elite_boss_appeared: "精英 Boss 已出现",
    NotificationKind.player_is_dead: "角色已死亡",
    NotificationKind.player_guildie_appeared: "地图上出现了公会成员",
    NotificationKind.player_stranger_appeared: "地图上出现了陌生玩家",
    NotificationKind.player_friend_appeared: "地图上出现了好友",
}


class DiscordNotification:
    """按事件种类去重的 Discord 通知发送器。

    Parameters
    ----------
    config:
        通知配置。
    executor:
        发送请求的线程池，默认自建单线程池。
    """

    def __init__(self, config: NotificationConfig, executor: Executor | None = None) -> None:
        self._config = config
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="automaple-notify"
        )
        self._pending: set[NotificationKind] = set()
        self._lock = threading.Lock()

    def is_pending(self, kind: NotificationKind) -> bool:
        with self._lock:
            return kind in self._pending

    def schedule_notification(
        self, kind: NotificationKind, frame: np.ndarray | None = None
    ) -> bool:
        """提交一条通知。

        Returns
        -------
        bool
            已提交返回 True；未启用、该种类被过滤或同类通知仍在发送时返回 False。
        """
        if not self._config.enabled or kind not in self._config.notify_on:
            return False

        with self._lock:
            if kind in self._pending:
                logger.debug("通知 {} 正在发送，忽略", kind.value)
                return False
            self._pending.add(kind)

        try:
            attachment = _encode_frame(frame) if frame is not None else None
            self._executor.submit(self._send, kind, self._content(kind), attachment)
        except (cv2.error, RuntimeError) as e:
            # 线程池已关闭或截图无法编码
            logger.opt(exception=e).warning("通知提交失败: {}", kind.value)
            with self._lock:
                self._pending.discard(kind)
            return False
        return True

    # ── 内部 ──

    def _content(self, kind: NotificationKind) -> str:
        mention = f"<@{self._config.discord_user_id}> " if self._config.discord_user_id else ""
        return mention + _CONTENTS[kind]

    def _send(self, kind: NotificationKind, content: str, attachment: bytes | None) -> None:
        try:
            self._post(content, attachment)
            logger.info("已推送通知: {}", kind.value)
        except NotificationError as e:
            logger.opt(exception=e).warning("通知推送失败: {}", kind.value)
        finally:
            with self._lock:
                self._pending.discard(kind)

    def _post(self, content: str, attachment: bytes | None) -> None:
        data = {"content": content, "username": _USERNAME}
        files = {"file": ("frame.png", attachment, "image/png")} if attachment else None
        try:
            response = requests.post(
                self._config.discord_webhook_url,
                data=data,
                files=files,
                timeout=self._config.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(str(e)) from e


def _encode_frame(frame: np.ndarray) -> bytes | None:
    ok, buf = cv2.imencode(".png", frame)
    if not ok:
        logger.warning("通知截图编码失败，仅发送文本")
        return None
    return buf.tobytes()
