#!/usr/bin/env python3
"""
Order Sync Agent - kitchen tablet order sync with a JSON status endpoint
"""

import json
import logging
from http.server import HTTPServer, BaseHTTPRequestHandler
from urllib.parse import urlparse, parse_qs

from order_sync.config import load_config
from order_sync.local_store import LocalStore
from order_sync.logging_config import set_error_alert_callback, setup_logging
from order_sync.models import utc_now_iso
from order_sync.order_client import OrderServiceClient, StubOrderClient
from order_sync.sync_engine import OrderSyncEngine

logger = logging.getLogger(__name__)


def _demo_orders():
    now = utc_now_iso()
    return [
        {'id': 'demo-1', 'numeric_id': 1001, 'order_number': 'A-1001', 'status': 'pending',
         'created_at': now, 'total': 24.5,
         'items': [{'name': 'Pad Thai', 'quantity': 2, 'unit_price': 12.25}]},
        {'id': 'demo-2', 'numeric_id': 1002, 'order_number': 'A-1002', 'status': 'preparing',
         'created_at': now, 'total': 9.0,
         'items': [{'name': 'Spring Rolls', 'quantity': 1, 'unit_price': 9.0}]},
    ]


def _log_print(order):
    logger.info(f"[PRINT] Kitchen ticket for order {order.order_number or order.id}")
    return True


def build_engine(config) -> OrderSyncEngine:
    store = LocalStore(config['db_path'])
    if config['server_url']:
        client = OrderServiceClient(
            config['server_url'],
            api_key=config['api_key'],
            timeout=config['request_timeout'],
            orders_path=config['orders_path'],
        )
    else:
        logger.warning("No server_url configured - running against demo orders")
        client = StubOrderClient(_demo_orders())
    return OrderSyncEngine(
        client, store,
        print_order=_log_print,
        auto_print=config['auto_print'],
        poll_interval=config['poll_interval'],
        probe_interval=config['probe_interval'],
    )


def make_handler(engine: OrderSyncEngine):
    class Handler(BaseHTTPRequestHandler):
        def _send_json(self, payload, code=200):
            body = json.dumps(payload, default=str).encode()
            self.send_response(code)
            self.send_header('Content-type', 'application/json')
            self.send_header('Content-Length', str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self):
            url = urlparse(self.path)
            params = {k: v[0] for k, v in parse_qs(url.query).items()}

            if url.path == '/status':
                self._send_json(engine.get_status())
            elif url.path == '/orders':
                self._send_json([o.to_dict() for o in engine.state.orders])
            elif url.path == '/queue':
                self._send_json([a.to_dict() for a in engine.queue.pending()])
            elif url.path == '/acknowledge' and 'order_id' in params:
                self._send_json({'success': engine.acknowledge(params['order_id'])})
            elif url.path == '/update_status' and {'order_id', 'status'} <= set(params):
                ok = engine.update_status(params['order_id'], params['status'])
                self._send_json({'success': ok})
            elif url.path == '/process_queue':
                self._send_json(engine.process_queue())
            elif url.path == '/retry_prints':
                self._send_json({'printed': engine.retry_failed_prints()})
            else:
                self._send_json({'error': 'not found'}, 404)

        def log_message(self, format, *args):
            logger.debug("%s - %s", self.address_string(), format % args)

    return Handler


def main():
    config = load_config()
    setup_logging(config['log_path'])

    engine = build_engine(config)
    # ERROR records, including failed status updates, show up under /status alerts
    set_error_alert_callback(engine.add_alert)
    report = engine.start()
    logger.info(f"Recovery: {report}")

    port = config['status_port']
    server = HTTPServer(('', port), make_handler(engine))
    logger.info(f"Status endpoint: http://localhost:{port}/status")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        server.server_close()
        engine.stop()


if __name__ == '__main__':
    main()
