# -*- coding: utf-8 -*-
"""
Webhook server (Flask)

One route per enabled channel at /webhook/<channel>:
1. the adapter authenticates and maps the request
2. handshakes are answered directly
3. SYNC channels: the gateway runs inline and the reply is the response body
4. ASYNC channels: acknowledged at once; gateway + delivery run on a worker pool
"""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Iterable, Optional

from flask import Flask, jsonify, request

from aiexpense.channels import ChannelAdapter, DeliveryMode, build_adapters
from aiexpense.config import Settings, load_settings
from aiexpense.errors import DeliveryError, InvalidSignatureError, MalformedPayloadError
from aiexpense.gateway import MessageGateway, build_gateway
from aiexpense.types import MessageResponse, UserMessage

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
WORKER_THREADS = 8


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


class WebhookDispatcher:
    """Connects adapters to the gateway and picks the delivery path."""

    def __init__(self, gateway: MessageGateway, executor: Executor):
        self.gateway = gateway
        self.executor = executor

    def run_gateway(self, adapter: ChannelAdapter, message: UserMessage) -> tuple[MessageResponse, bool]:
        """Returns (response, failed); a gateway failure becomes the adapter's generic reply."""
        try:
            return self.gateway.process(message), False
        except Exception as e:
            logger.error(f"Gateway failed for {adapter.name}/{message.user_id}: {e}", exc_info=True)
            return adapter.failure_response(), True

    def process_and_deliver(self, adapter: ChannelAdapter, message: UserMessage) -> None:
        response, failed = self.run_gateway(adapter, message)
        try:
            adapter.deliver(response, message.metadata)
        except DeliveryError as e:
            logger.error(f"Delivery failed for {adapter.name}/{message.user_id}: {e}")
            return
        logger.info(f"Delivered {'failure' if failed else 'reply'} to {adapter.name}/{message.user_id}")

    def handle(self, adapter: ChannelAdapter):
        body = request.get_data()
        try:
            inbound = adapter.receive(body, request.headers, request.args)
        except InvalidSignatureError as e:
            logger.warning(f"Rejected {adapter.name} webhook: {e}")
            return "Invalid signature", 401
        except MalformedPayloadError as e:
            logger.warning(f"Malformed {adapter.name} webhook: {e}")
            return "Bad request", 400

        if inbound.handshake is not None:
            if isinstance(inbound.handshake, dict):
                return jsonify(inbound.handshake)
            return str(inbound.handshake), 200

        if adapter.delivery is DeliveryMode.SYNC:
            if not inbound.messages:
                return "Bad request", 400
            message = inbound.messages[0]
            response, failed = self.run_gateway(adapter, message)
            return jsonify(adapter.deliver(response, {**message.metadata, "failed": failed}))

        for message in inbound.messages:
            self.executor.submit(self.process_and_deliver, adapter, message)
        return adapter.acknowledge(), 200


def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[MessageGateway] = None,
    executor: Optional[Executor] = None,
    adapters: Optional[Iterable[ChannelAdapter]] = None,
) -> Flask:
    """
    Flask application factory.

    Args:
        settings: configuration (loaded and validated from the environment if omitted)
        gateway: message gateway (built from settings if omitted)
        executor: worker pool for ASYNC channels
        adapters: channel adapters (one per enabled channel if omitted)

    Raises:
        ConfigError: an enabled channel is missing credentials
    """
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    gateway = gateway or build_gateway(settings)
    executor = executor or ThreadPoolExecutor(max_workers=WORKER_THREADS, thread_name_prefix="webhook")
    adapters = list(adapters) if adapters is not None else build_adapters(settings)

    app = Flask(__name__)
    dispatcher = WebhookDispatcher(gateway, executor)
    app.extensions["aiexpense"] = {"gateway": gateway, "dispatcher": dispatcher, "adapters": adapters}

    for adapter in adapters:
        app.add_url_rule(
            adapter.route,
            endpoint=f"webhook_{adapter.name}",
            view_func=lambda adapter=adapter: dispatcher.handle(adapter),
            methods=list(adapter.methods),
        )
        logger.info(f"Registered {adapter.name} webhook at {adapter.route} ({adapter.delivery.value})")

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint"""
        return jsonify({"status": "ok", "channels": [adapter.name for adapter in adapters]})

    return app
