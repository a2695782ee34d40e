# services/journal/intel/orchestrator.py
"""API server and main loop for the journal service."""

import asyncio
import json
import math
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from aiohttp import web

from .db import JournalDB
from .models import Trade, INSTRUMENT_TYPES, DIRECTIONS, DEFAULT_INITIAL_BALANCE, to_camel, parse_timestamp
from .metrics import (
    BUCKETS,
    compute_summary,
    compute_over_time,
    compute_by_instrument,
    current_balance,
)
from .trade_math import (
    profit_loss_percentage,
    holding_duration_label,
    derive_risk_reward_ratio,
)
from .auth import JournalAuth, require_auth


REQUIRED_TRADE_FIELDS = (
    'instrumentType', 'instrumentName', 'direction',
    'entryPrice', 'exitPrice', 'quantity', 'profitLoss',
)

NUMERIC_TRADE_FIELDS = {
    'entry_price', 'exit_price', 'quantity', 'stop_loss', 'take_profit',
    'position_size', 'profit_loss', 'risk_reward_ratio',
}

DATE_TRADE_FIELDS = ('entry_date', 'exit_date', 'trade_date')

# camelCase body keys -> Trade attributes
TRADE_BODY_FIELDS = {
    to_camel(name): name
    for name in Trade.field_names()
    if name not in ('id', 'user_id', 'profit_loss_percentage', 'duration', 'created_at', 'updated_at')
}

SERVER_ERROR = 'Server error'


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


def _number(value: Any, field: str) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a number")
    if not math.isfinite(number):
        raise ValueError(f"{field} must be a finite number")
    return number


def parse_trade_body(body: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate a camelCase trade payload into Trade attribute values."""
    if not isinstance(body, dict):
        raise ValueError('Request body must be a JSON object')

    if not partial:
        for key in REQUIRED_TRADE_FIELDS:
            if body.get(key) is None or body.get(key) == '':
                raise KeyError(key)

    values: Dict[str, Any] = {}
    for key, attr in TRADE_BODY_FIELDS.items():
        if key not in body:
            continue
        value = body[key]
        if attr in NUMERIC_TRADE_FIELDS:
            value = _number(value, key)
        values[attr] = value

    for attr in DATE_TRADE_FIELDS:
        if values.get(attr) in (None, ''):
            continue
        if parse_timestamp(values[attr]) is None:
            raise ValueError(f"{to_camel(attr)} must be an ISO-8601 date")

    if 'instrument_type' in values and values['instrument_type'] not in INSTRUMENT_TYPES:
        raise ValueError(f"instrumentType must be one of {', '.join(INSTRUMENT_TYPES)}")
    if 'direction' in values and values['direction'] not in DIRECTIONS:
        raise ValueError(f"direction must be one of {', '.join(DIRECTIONS)}")
    if 'instrument_name' in values:
        values['instrument_name'] = str(values['instrument_name']).strip()
    if 'tags' in values and not isinstance(values['tags'] or [], list):
        raise ValueError('tags must be a list')

    return values


class JournalOrchestrator:
    """REST API server for the trading journal."""

    DEFAULT_ORIGINS = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
        'http://localhost:5173',
        'http://127.0.0.1:5173',
    ]

    def __init__(self, config: Dict[str, Any], logger, db: Optional[JournalDB] = None):
        self.config = config
        self.logger = logger
        self.port = int(config.get('JOURNAL_PORT', 5000))
        self.db = db or JournalDB(
            config.get('JOURNAL_DB_PATH') or None,
            default_initial_balance=float(config.get('DEFAULT_INITIAL_BALANCE', DEFAULT_INITIAL_BALANCE)),
        )
        self.auth = JournalAuth(config, self.db)

        origins = [o.strip() for o in str(config.get('CORS_ORIGINS') or '').split(',') if o.strip()]
        self.allowed_origins = origins or list(self.DEFAULT_ORIGINS)

    def _get_cors_origin(self, request: Optional[web.Request]) -> str:
        """Get allowed origin for CORS response."""
        origin = request.headers.get('Origin', '') if request is not None else ''
        if origin in self.allowed_origins:
            return origin
        return self.allowed_origins[0]

    def _cors_headers(self, request: Optional[web.Request]) -> Dict[str, str]:
        return {
            'Access-Control-Allow-Origin': self._get_cors_origin(request),
            'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
            'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-User-Id, X-User-Email, X-User-Name',
            'Access-Control-Allow-Credentials': 'true',
        }

    def _json_response(self, data: Any, status: int = 200, request: web.Request = None) -> web.Response:
        """Create a JSON response with CORS headers."""
        return web.Response(
            text=json.dumps(data, default=str),
            status=status,
            content_type='application/json',
            headers=self._cors_headers(request),
        )

    def _error_response(self, message: str, status: int = 400, request: web.Request = None) -> web.Response:
        """Create an error JSON response."""
        return self._json_response({'success': False, 'error': message}, status, request)

    async def handle_options(self, request: web.Request) -> web.Response:
        """Handle CORS preflight requests."""
        return web.Response(status=204, headers=self._cors_headers(request))

    async def _read_json(self, request: web.Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise ValueError('Request body must be valid JSON')
        if not isinstance(body, dict):
            raise ValueError('Request body must be a JSON object')
        return body

    @staticmethod
    def _metric_filters(params) -> Dict[str, Any]:
        return {
            'instrument_type': params.get('instrumentType') or None,
            'instrument_name': params.get('instrumentName') or None,
            'timeframe': params.get('timeframe') or None,
            'start_date': params.get('startDate') or None,
            'end_date': params.get('endDate') or None,
        }

    def _balance_before(self, user, exclude: Optional[Trade] = None) -> float:
        net = self.db.net_profit_loss(user.id)
        if exclude is not None:
            net -= exclude.profit_loss or 0
        return user.initial_balance + net

    # ==================== Account ====================

    @require_auth
    async def get_me(self, request: web.Request) -> web.Response:
        """GET /api/auth/me - Current user and account settings."""
        return self._json_response({
            'success': True,
            'user': request['user'].to_api_dict()
        }, request=request)

    @require_auth
    async def update_profile(self, request: web.Request) -> web.Response:
        """PUT /api/auth/profile - Update name or initial balance."""
        try:
            body = await self._read_json(request)
            updates: Dict[str, Any] = {}
            if 'name' in body:
                updates['name'] = body['name']
            if 'initialBalance' in body:
                balance = _number(body['initialBalance'], 'initialBalance')
                if balance is None or balance < 0:
                    return self._error_response('initialBalance must be a non-negative number', 400, request)
                updates['initial_balance'] = balance

            user = self.db.update_user(request['user'].id, updates)
            return self._json_response({'success': True, 'user': user.to_api_dict()}, request=request)
        except ValueError as e:
            return self._error_response(str(e), 400, request)
        except Exception as e:
            self.logger.error(f"update_profile error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    # ==================== Metrics ====================

    @require_auth
    async def metrics_summary(self, request: web.Request) -> web.Response:
        """GET /api/metrics/summary - Overall performance for the filtered trade set."""
        try:
            user = request['user']
            filters = self._metric_filters(request.query)
            trades = self.db.list_trades(user.id, **filters)

            summary = compute_summary(trades)

            all_trades = trades if not any(filters.values()) else self.db.list_trades(user.id)
            data = summary.to_api_dict()
            data['initialBalance'] = round(user.initial_balance, 2)
            data['currentBalance'] = round(current_balance(user.initial_balance, all_trades), 2)

            return self._json_response({'success': True, 'data': data}, request=request)
        except ValueError as e:
            return self._error_response(str(e), 400, request)
        except Exception as e:
            self.logger.error(f"metrics_summary error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    @require_auth
    async def metrics_performance(self, request: web.Request) -> web.Response:
        """GET /api/metrics/performance - P&L per daily/weekly/monthly period."""
        try:
            user = request['user']
            params = request.query
            period = params.get('period') or 'monthly'
            if period not in BUCKETS:
                return self._error_response(
                    f"period must be one of {', '.join(BUCKETS)}", 400, request
                )

            trades = self.db.list_trades(
                user.id,
                sort='entryDate',
                instrument_type=params.get('instrumentType') or None,
                start_date=params.get('startDate') or None,
                end_date=params.get('endDate') or None,
            )

            data = [point.to_api_dict() for point in compute_over_time(trades, period)]
            return self._json_response({'success': True, 'data': data}, request=request)
        except ValueError as e:
            return self._error_response(str(e), 400, request)
        except Exception as e:
            self.logger.error(f"metrics_performance error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    @require_auth
    async def metrics_instruments(self, request: web.Request) -> web.Response:
        """GET /api/metrics/instruments - Performance per instrument, best first."""
        try:
            trades = self.db.list_trades(request['user'].id, sort='createdAt')
            data = [row.to_api_dict() for row in compute_by_instrument(trades)]
            return self._json_response({'success': True, 'data': data}, request=request)
        except Exception as e:
            self.logger.error(f"metrics_instruments error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    # ==================== Trades ====================

    @require_auth
    async def list_trades(self, request: web.Request) -> web.Response:
        """GET /api/trades - Paginated trades for the current user."""
        try:
            user = request['user']
            params = request.query

            page = max(1, int(params.get('page', 1)))
            limit = max(1, int(params.get('limit', 10)))
            filters = {
                'instrument_name': params.get('instrumentName') or None,
                'direction': params.get('direction') or None,
                'outcome': params.get('outcome') or None,
                'start_date': params.get('startDate') or None,
                'end_date': params.get('endDate') or None,
            }

            total = self.db.count_trades(user.id, **filters)
            trades = self.db.list_trades(
                user.id,
                sort=params.get('sort', '-entryDate'),
                limit=limit,
                offset=(page - 1) * limit,
                **filters
            )
            total_pages = math.ceil(total / limit)

            return self._json_response({
                'success': True,
                'trades': [t.to_api_dict() for t in trades],
                'total': total,
                'page': page,
                'totalPages': total_pages,
                'hasNextPage': page < total_pages,
                'hasPrevPage': page > 1,
            }, request=request)
        except ValueError as e:
            return self._error_response(str(e), 400, request)
        except Exception as e:
            self.logger.error(f"list_trades error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    def _owned_trade(self, request: web.Request, action: str):
        """Fetch the trade in the URL; returns (trade, error_response)."""
        trade = self.db.get_trade(request.match_info['id'])
        if not trade:
            return None, self._error_response('Trade not found', 404, request)
        if trade.user_id != request['user'].id:
            return None, self._error_response(f'Not authorized to {action} this trade', 403, request)
        return trade, None

    @require_auth
    async def get_trade(self, request: web.Request) -> web.Response:
        """GET /api/trades/:id - Get a single trade."""
        try:
            trade, error = self._owned_trade(request, 'access')
            if error:
                return error
            return self._json_response({'success': True, 'data': trade.to_api_dict()}, request=request)
        except Exception as e:
            self.logger.error(f"get_trade error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    @require_auth
    async def create_trade(self, request: web.Request) -> web.Response:
        """POST /api/trades - Journal a new trade."""
        try:
            user = request['user']
            values = parse_trade_body(await self._read_json(request))

            now = _utcnow_iso()
            values['entry_date'] = values.get('entry_date') or now
            values['exit_date'] = values.get('exit_date') or now
            values['trade_date'] = values.get('trade_date') or values['entry_date']
            if values.get('position_size') is None:
                values['position_size'] = values['quantity']
            if values.get('risk_reward_ratio') is None:
                values['risk_reward_ratio'] = derive_risk_reward_ratio(
                    values['direction'], values['entry_price'], values['exit_price'], values.get('stop_loss')
                )
            values['tags'] = values.get('tags') or []
            values['notes'] = values.get('notes') or ''

            balance = self._balance_before(user)
            if balance <= 0:
                self.logger.warn(f"balance for user {user.id} is {balance:.2f}; P&L percentage set to 0")

            trade = Trade(
                id=Trade.new_id(),
                user_id=user.id,
                profit_loss_percentage=profit_loss_percentage(values['profit_loss'], balance),
                duration=holding_duration_label(values['entry_date'], values['exit_date']),
                **values
            )

            created = self.db.create_trade(trade)
            self.logger.info(
                f"Created trade: {created.direction} {created.instrument_name} P&L {created.profit_loss:.2f}",
                emoji="📝"
            )

            return self._json_response({'success': True, 'data': created.to_api_dict()}, 201, request)

        except KeyError as e:
            return self._error_response(f'Missing required field: {e.args[0]}', 400, request)
        except ValueError as e:
            return self._error_response(str(e), 400, request)
        except Exception as e:
            self.logger.error(f"create_trade error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    @require_auth
    async def update_trade(self, request: web.Request) -> web.Response:
        """PUT /api/trades/:id - Update a trade."""
        try:
            trade, error = self._owned_trade(request, 'update')
            if error:
                return error

            updates = parse_trade_body(await self._read_json(request), partial=True)
            for key in ('instrument_type', 'instrument_name', 'direction', 'entry_price',
                        'exit_price', 'quantity', 'profit_loss'):
                if key in updates and updates[key] is None:
                    return self._error_response(f'{to_camel(key)} cannot be empty', 400, request)

            if 'profit_loss' in updates:
                balance = self._balance_before(request['user'], exclude=trade)
                updates['profit_loss_percentage'] = profit_loss_percentage(updates['profit_loss'], balance)

            rrr_inputs = ('direction', 'entry_price', 'exit_price', 'stop_loss')
            if 'risk_reward_ratio' not in updates and any(k in updates for k in rrr_inputs):
                merged = {k: updates.get(k, getattr(trade, k)) for k in rrr_inputs}
                updates['risk_reward_ratio'] = derive_risk_reward_ratio(
                    merged['direction'], merged['entry_price'], merged['exit_price'], merged['stop_loss']
                )

            if 'entry_date' in updates or 'exit_date' in updates:
                updates['duration'] = holding_duration_label(
                    updates.get('entry_date', trade.entry_date),
                    updates.get('exit_date', trade.exit_date),
                )

            updated = self.db.update_trade(trade.id, updates)
            return self._json_response({'success': True, 'data': updated.to_api_dict()}, request=request)

        except ValueError as e:
            return self._error_response(str(e), 400, request)
        except Exception as e:
            self.logger.error(f"update_trade error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    @require_auth
    async def delete_trade(self, request: web.Request) -> web.Response:
        """DELETE /api/trades/:id - Delete a trade."""
        try:
            trade, error = self._owned_trade(request, 'delete')
            if error:
                return error

            self.db.delete_trade(trade.id)
            self.logger.info(f"Deleted trade {trade.id}", emoji="🗑️")
            return self._json_response({'success': True, 'data': {}}, request=request)
        except Exception as e:
            self.logger.error(f"delete_trade error: {e}")
            return self._error_response(SERVER_ERROR, 500, request)

    # ==================== Service ====================

    async def health_check(self, request: web.Request) -> web.Response:
        """GET /health - Health check endpoint."""
        return self._json_response({
            'success': True,
            'service': 'journal',
            'status': 'healthy',
            'ts': _utcnow_iso()
        }, request=request)

    @web.middleware
    async def cors_middleware(self, request: web.Request, handler):
        """Add CORS headers to all responses."""
        if request.method == 'OPTIONS':
            return await self.handle_options(request)

        response = await handler(request)
        response.headers.update(self._cors_headers(request))
        return response

    def create_app(self) -> web.Application:
        """Create the aiohttp application with routes."""
        app = web.Application(middlewares=[self.cors_middleware])

        # CORS preflight for all routes
        app.router.add_route('OPTIONS', '/{tail:.*}', self.handle_options)

        app.router.add_get('/health', self.health_check)

        # Account
        app.router.add_get('/api/auth/me', self.get_me)
        app.router.add_put('/api/auth/profile', self.update_profile)

        # Metrics
        app.router.add_get('/api/metrics/summary', self.metrics_summary)
        app.router.add_get('/api/metrics/performance', self.metrics_performance)
        app.router.add_get('/api/metrics/instruments', self.metrics_instruments)

        # Trades
        app.router.add_get('/api/trades', self.list_trades)
        app.router.add_post('/api/trades', self.create_trade)
        app.router.add_get('/api/trades/{id}', self.get_trade)
        app.router.add_put('/api/trades/{id}', self.update_trade)
        app.router.add_delete('/api/trades/{id}', self.delete_trade)

        return app

    async def start(self) -> web.AppRunner:
        """Start the API server and return the runner for cleanup."""
        app = self.create_app()
        runner = web.AppRunner(app)
        await runner.setup()

        site = web.TCPSite(runner, '0.0.0.0', self.port)
        await site.start()

        self.logger.ok(f"Journal API running on port {self.port}", emoji="📒")
        return runner


async def run(config: Dict[str, Any], logger) -> None:
    """Entry point for orchestrator."""
    orchestrator = JournalOrchestrator(config, logger)
    runner = await orchestrator.start()

    try:
        # Run forever until cancelled
        while True:
            await asyncio.sleep(1)
    except asyncio.CancelledError:
        logger.info("Orchestrator cancelled", emoji="🛑")
    finally:
        logger.info("Shutting down API server", emoji="🛑")
        await runner.cleanup()
