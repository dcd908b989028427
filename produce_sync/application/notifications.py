from __future__ import annotations

import logging

from produce_sync.domain.ports import NotifierPort
from produce_sync.domain.sync_models import Notification, NotificationLevel

logger = logging.getLogger(__name__)

CONNECTION_RESTORED = ("Conexão restaurada", "Iniciando sincronização...", 2000)
WORKING_OFFLINE = ("Sem conexão", "Modo offline ativado", 3000)
SYNC_NEEDS_CONNECTION = ("Sem conexão", "Aguarde a conexão para sincronizar", None)
SYNC_COMPLETE = ("Sincronização completa", "{completed} item(s) atualizado(s)", 3000)
SYNC_PARTIAL = ("Sincronização parcial", "{completed} sucesso, {errors} erro(s)", 4000)
ORDER_SAVED_OFFLINE = ("Salvo no celular", "Pedido será enviado quando a conexão voltar", 4000)
ORDER_SENT = ("Pedido enviado", "Dados salvos no servidor", None)
ORDER_SAVED_AFTER_FAILURE = ("Erro ao enviar, salvo localmente", "Tentaremos enviar novamente em breve", None)
ORDER_NOT_SAVED = ("Pedido não foi salvo", "Não foi possível gravar o pedido no aparelho", None)
ORDER_WITHOUT_ITEMS = ("Adicione itens ao pedido", None, None)
ORDERS_REPLAYED = ("{delivered} pedido(s) sincronizado(s)", "Dados enviados para o servidor", None)


def send_notification(
    notifier: NotifierPort | None,
    level: NotificationLevel,
    message: tuple[str, str | None, int | None],
    **values: object,
) -> Notification | None:
    """Format a catalog message and hand it to the notifier without ever raising."""
    title, description, duration_ms = message
    notification = Notification(
        level=level,
        title=title.format(**values),
        description=description.format(**values) if description else None,
        duration_ms=duration_ms,
    )
    if notifier is None:
        return notification
    try:
        notifier.notify(notification)
    except Exception:  # noqa: BLE001
        logger.exception("TOAST_RENDER_FAILED level=%s title=%s", level, notification.title)
        return None
    return notification
