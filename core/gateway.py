# core/gateway.py
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence
from urllib.parse import quote

from aiohttp import web, ClientSession, TCPConnector, ClientTimeout, DummyCookieJar
from aiohttp import ClientConnectorError, ServerTimeoutError, ClientError
from multidict import CIMultiDict
from yarl import URL

from core.endpoint_resolver import EndpointResolver

logger = logging.getLogger(__name__)

# RFC 3986 pchar minus '%', which is always re-escaped
PATH_SAFE = "-._~!$&'()*+,;=:@"


class UnsupportedMethodError(ValueError):
    pass


@dataclass
class GatewayResponse:
    status: int
    body: Any
    set_cookies: List[str] = field(default_factory=list)


class BodyStream:
    """
    Inbound request body piped upstream chunk by chunk.

    Accepts bytes, an aiohttp StreamReader or any async iterable of bytes.
    Once closed it yields nothing more.
    """

    def __init__(self, source: Any, chunk_size: int = 64 * 1024):
        self._source = source
        self._buffer = None
        self._iterator = None
        self.closed = False

        if isinstance(source, (bytes, bytearray)):
            self._buffer = bytes(source)
        elif hasattr(source, 'iter_chunked'):
            self._iterator = source.iter_chunked(chunk_size).__aiter__()
        else:
            self._iterator = source.__aiter__()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration

        if self._iterator is None:
            chunk, self._buffer = self._buffer, None
            if not chunk:
                raise StopAsyncIteration
            return chunk

        return await self._iterator.__anext__()

    async def aclose(self):
        if self.closed:
            return
        self.closed = True
        self._buffer = None

        closer = getattr(self._source, 'aclose', None)
        if closer is not None:
            try:
                await closer()
            except RuntimeError:
                # Generator is suspended inside the request writer task,
                # which finalizes it when it is cancelled
                logger.debug("Body source still owned by the request writer")


class DmsGateway:
    """
    Same-origin gateway in front of the DMS backend.

    Forwards a request to the resolved backend URL with only the caller's
    Cookie, its Content-Type and a forced Accept: application/json, and hands
    back the backend status, JSON body and every Set-Cookie value in order.
    Nothing about a request outlives it; the pooled client session carries no
    cookies between callers.
    """

    SUPPORTED_METHODS = ('GET', 'POST', 'PUT', 'DELETE')
    BODY_METHODS = ('POST', 'PUT')

    def __init__(self, resolver: EndpointResolver, error_status: int = 502,
                 timeout: Optional[float] = None, chunk_size: int = 64 * 1024):
        """
        Args:
            resolver: Maps logical paths to backend URLs
            error_status: Status of synthesized transport-error responses
            timeout: Total request timeout in seconds (None = transport default)
            chunk_size: Chunk size used when streaming request bodies upstream
        """
        self.resolver = resolver
        self.error_status = error_status
        self.timeout = timeout
        self.chunk_size = chunk_size

        # Connection pool reused across requests
        self.connector = None
        self.session = None

        self.stats = {
            'total_requests': 0,
            'total_responses': 0,
            'active_connections': 0,
            'errors': 0
        }

    async def initialize(self):
        """Creates the backend connection pool"""
        if self.connector is None:
            self.connector = TCPConnector(
                limit=100,
                limit_per_host=50,
                ttl_dns_cache=300,
                keepalive_timeout=60,
                force_close=False
            )

        if self.session is None:
            session_kwargs = {
                'connector': self.connector,
                # Never store cookies: each call relays its own caller's session
                'cookie_jar': DummyCookieJar(),
            }
            if self.timeout:
                session_kwargs['timeout'] = ClientTimeout(total=self.timeout)
            self.session = ClientSession(**session_kwargs)

    async def cleanup(self):
        """Releases the connection pool"""
        if self.session:
            await self.session.close()
            self.session = None
        if self.connector:
            await self.connector.close()
            self.connector = None

    async def forward(self, method: str, segments: Sequence[str], query_string: str = '',
                      headers: Optional[Mapping[str, str]] = None, body: Any = None) -> GatewayResponse:
        """
        Forwards one request to the backend.

        Args:
            method: GET, POST, PUT or DELETE
            segments: Logical path segments
            query_string: Raw query string, appended verbatim
            headers: Inbound request headers
            body: bytes, an aiohttp StreamReader or an async iterable of bytes;
                only sent for POST and PUT

        Returns:
            GatewayResponse: backend status/body/set-cookies, or a synthesized
                error envelope on transport failure
        """
        method = method.upper()
        if method not in self.SUPPORTED_METHODS:
            raise UnsupportedMethodError(f"Method {method} is not supported by the gateway")

        # Segments arrive decoded; a literal '?' or '#' must stay inside the path
        url = URL(self.resolver.resolve([quote(segment, safe=PATH_SAFE) for segment in segments]),
                  encoded=True)
        if query_string:
            # Raw query string goes through untouched
            url = URL(f"{url}?{query_string.lstrip('?')}", encoded=True)

        upstream_headers = self._build_upstream_headers(headers or {})
        stream = None
        if method in self.BODY_METHODS and body is not None:
            stream = BodyStream(body, self.chunk_size)

        self.stats['active_connections'] += 1
        try:
            await self.initialize()
            logger.debug(f"🔐 Proxying {method} to backend: {url}")

            async with self.session.request(
                method=method,
                url=url,
                headers=upstream_headers,
                data=stream,
                allow_redirects=False,
                skip_auto_headers=('Content-Type',)
            ) as upstream_response:
                set_cookies = list(upstream_response.headers.getall('Set-Cookie', []))
                content = await upstream_response.read()

                try:
                    data = json.loads(content)
                except ValueError as e:
                    logger.error(
                        f"❌ Backend returned a non-JSON body\n"
                        f"   URL: {url}\n"
                        f"   Status: {upstream_response.status}\n"
                        f"   Content-Type: {upstream_response.headers.get('Content-Type')}"
                    )
                    return self._error_response(
                        'Invalid backend response', e,
                        upstream_status=upstream_response.status
                    )

                self.stats['total_responses'] += 1
                logger.debug(f"Backend response: {upstream_response.status}, {len(set_cookies)} cookie(s)")
                return GatewayResponse(
                    status=upstream_response.status,
                    body=data,
                    set_cookies=set_cookies
                )

        except ClientConnectorError as e:
            logger.error(f"❌ Backend unavailable: {e}")
            return self._error_response('Backend unavailable', e)

        except (ServerTimeoutError, asyncio.TimeoutError) as e:
            logger.error(f"❌ Backend timeout: {url}")
            return self._error_response('Backend timeout', e)

        except ClientError as e:
            logger.error(f"❌ Proxy error for {url}: {e}", exc_info=True)
            return self._error_response('Proxy error', e)

        finally:
            if stream is not None:
                await stream.aclose()
            self.stats['active_connections'] -= 1

    async def handle(self, request: web.Request) -> web.Response:
        """aiohttp handler for ANY {prefix}/{path}"""
        self.stats['total_requests'] += 1
        segments = [part for part in request.match_info.get('path', '').split('/') if part]
        body = request.content if request.body_exists else None

        try:
            result = await self.forward(
                request.method, segments, request.rel_url.raw_query_string, request.headers, body
            )
        except UnsupportedMethodError as e:
            return web.json_response({'message': 'Method not allowed', 'error': str(e)}, status=405)
        except ValueError as e:
            return web.json_response({'message': 'Invalid proxy path', 'error': str(e)}, status=400)

        response = web.json_response(result.body, status=result.status)
        for cookie in result.set_cookies:
            response.headers.add('Set-Cookie', cookie)
        return response

    def add_routes(self, app: web.Application, prefix: str = '/proxy'):
        route_path = f"{prefix.rstrip('/')}/{{path:.*}}"
        for method in self.SUPPORTED_METHODS:
            app.router.add_route(method, route_path, self.handle)

    def _build_upstream_headers(self, headers: Mapping[str, str]) -> dict:
        inbound = CIMultiDict(headers)
        upstream = {'Accept': 'application/json'}

        cookie = inbound.get('Cookie')
        if cookie:
            upstream['Cookie'] = cookie

        content_type = inbound.get('Content-Type')
        if content_type:
            upstream['Content-Type'] = content_type

        return upstream

    def _error_response(self, message: str, error: Exception, **extra) -> GatewayResponse:
        self.stats['errors'] += 1
        payload = {'message': message, 'error': str(error) or error.__class__.__name__}
        payload.update(extra)
        return GatewayResponse(status=self.error_status, body=payload, set_cookies=[])

    def get_full_stats(self):
        """Gateway counters for status reporting"""
        return {
            'requests': self.stats['total_requests'],
            'responses': self.stats['total_responses'],
            'active': self.stats['active_connections'],
            'errors': self.stats['errors']
        }
