"""
Network discovery for WiFi devices: passive mDNS listening + active HTTP scan
"""

import asyncio
import aiohttp
import ipaddress
import itertools
import time
import logging
from typing import List, Optional

from zeroconf import IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from .models import DiscoveredDevice, DeviceFilter, DiscoveryResult, ConnectionType, DeviceType
from .registry import DeviceRegistry
from .classification import (
    classify_service,
    classify_http_body,
    refine_by_name,
    extract_title,
    service_display_name,
)
from http_helper import create_probe_session, MAX_REDIRECTS

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 64 * 1024
ESTIMATED_WIFI_SIGNAL = -50


class NetworkProbe:
    """Discovers WiFi devices; a discovery call never raises and never overruns its timeout"""

    def __init__(self, config: dict):
        self.config = config
        self.discovery_timeout_ms = config.get('discovery_timeout_ms', 10000)
        self.listener_timeout_ms = config.get('listener_timeout_ms', 5000)
        self.probe_timeout = config.get('probe_timeout_ms', 800) / 1000
        self.max_concurrent_probes = config.get('max_concurrent_probes', 20)
        self.scan_ranges = config.get('scan_ranges', ['192.168.1.0/24', '192.168.0.0/24', '10.0.0.0/24'])
        self.hosts_per_range = config.get('hosts_per_range', 25)
        self.max_scan_hosts = config.get('max_scan_hosts', 100)
        self.scan_ports = config.get('scan_ports', [80, 8080, 8081, 8888, 5000, 3000, 8000])
        self.service_types = config.get('service_types', [])
        self.dedupe_by_endpoint = config.get('dedupe_by_endpoint', True)

    async def discover(self, timeout_ms: Optional[int] = None,
                       device_filter: Optional[DeviceFilter] = None) -> List[DiscoveredDevice]:
        """
        Run passive listeners and the active scan concurrently, bounded by timeout_ms.
        Devices found before the deadline are kept even when strategies are cut short.
        """
        timeout = (timeout_ms or self.discovery_timeout_ms) / 1000
        start_time = time.time()
        deadline = asyncio.get_running_loop().time() + timeout
        registry = DeviceRegistry(dedupe_by_endpoint=self.dedupe_by_endpoint)

        logger.info(f"[SCAN] Starting WiFi discovery (timeout {timeout:.1f}s)")
        try:
            outcomes = await asyncio.wait_for(
                asyncio.gather(
                    self.listen_for_services(timeout, registry),
                    self.scan_local_network(deadline, registry),
                    return_exceptions=True
                ),
                timeout=timeout
            )
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    logger.warning(f"Discovery strategy failed: {outcome}")
                elif isinstance(outcome, DiscoveryResult):
                    logger.info(f"[SCAN] {outcome.method}: {outcome.success_count}/{outcome.probes_attempted} "
                                f"hosts answered in {outcome.duration_seconds:.1f}s")
        except asyncio.TimeoutError:
            logger.debug(f"WiFi discovery deadline reached after {timeout:.1f}s")
        except Exception as e:
            logger.error(f"WiFi discovery failed: {e}")

        devices = DeviceRegistry.filter(registry.devices(), device_filter)
        logger.info(f"[PASS] WiFi discovery: {len(devices)} devices in {time.time() - start_time:.1f}s")
        return devices

    # ================== PASSIVE: mDNS ADVERTISEMENTS ==================

    async def listen_for_services(self, timeout: float, registry: DeviceRegistry) -> int:
        """Browse every known service type concurrently, each on its own sub-timeout"""
        sub_timeout = min(self.listener_timeout_ms / 1000, timeout)
        before = len(registry)
        aiozc = None
        try:
            aiozc = AsyncZeroconf(ip_version=IPVersion.V4Only)
            await asyncio.gather(
                *(self._browse_service_type(aiozc, service_type, sub_timeout, registry)
                  for service_type in self.service_types),
                return_exceptions=True
            )
        except Exception as e:
            logger.warning(f"mDNS listening unavailable: {e}")
        finally:
            if aiozc:
                await aiozc.async_close()

        found = len(registry) - before
        logger.info(f"[MDNS] {found} devices from service advertisements")
        return found

    async def _browse_service_type(self, aiozc: AsyncZeroconf, service_type: str,
                                   sub_timeout: float, registry: DeviceRegistry):
        fqdn = f"{service_type}.local."
        pending = set()
        resolve_timeout_ms = int(min(1.0, sub_timeout / 2) * 1000)

        def on_service_state_change(zeroconf, service_type, name, state_change):
            if state_change is not ServiceStateChange.Added:
                return
            task = asyncio.ensure_future(
                self._resolve_service(aiozc, service_type, name, resolve_timeout_ms, registry)
            )
            pending.add(task)
            task.add_done_callback(pending.discard)

        browser = AsyncServiceBrowser(aiozc.zeroconf, [fqdn], handlers=[on_service_state_change])
        try:
            await asyncio.sleep(sub_timeout)
        finally:
            await browser.async_cancel()
            for task in list(pending):
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _resolve_service(self, aiozc: AsyncZeroconf, service_type: str, name: str,
                               timeout_ms: int, registry: DeviceRegistry):
        try:
            info = AsyncServiceInfo(service_type, name)
            if not await info.async_request(aiozc.zeroconf, timeout_ms):
                logger.debug(f"No answer resolving {name}")
                return
            addresses = info.parsed_addresses(IPVersion.V4Only)
        except Exception as e:
            logger.debug(f"Failed to resolve {name}: {e}")
            return

        if not addresses:
            return
        device = self.service_to_device(service_type, name, addresses[0], info.port or 80)
        if registry.add(device):
            logger.info(f"[OK] mDNS found: {device.name} ({device.metadata['ip']}:{device.metadata['port']})")

    @staticmethod
    def service_to_device(service_type: str, name: str, ip: str, port: int) -> DiscoveredDevice:
        """Convert a resolved advertisement into a DiscoveredDevice"""
        display_name = service_display_name(name, service_type)
        device_type, provider, capabilities = classify_service(service_type, display_name)
        return DiscoveredDevice(
            id=f"{provider}-{ip}-{port}",
            name=display_name,
            type=device_type,
            connection_type=ConnectionType.WIFI,
            provider=provider,
            capabilities=capabilities,
            metadata={
                "ip": ip,
                "port": port,
                "signalStrength": ESTIMATED_WIFI_SIGNAL,
                "manufacturer": provider,
            },
        )

    # ================== ACTIVE: HTTP HOST/PORT SCAN ==================

    def generate_scan_targets(self) -> List[str]:
        """First hosts of each configured range, capped in total"""
        targets = []
        for ip_range in self.scan_ranges:
            try:
                if '-' in ip_range:
                    start_ip, end_ip = ip_range.split('-')
                    start = ipaddress.IPv4Address(start_ip.strip())
                    end = ipaddress.IPv4Address(end_ip.strip())
                    hosts = (ipaddress.IPv4Address(i) for i in range(int(start), int(end) + 1))
                else:
                    hosts = ipaddress.IPv4Network(ip_range.strip(), strict=False).hosts()
            except ValueError:
                logger.warning(f"Invalid IP range: {ip_range}")
                continue

            for ip in itertools.islice(hosts, self.hosts_per_range):
                targets.append(str(ip))
                if len(targets) >= self.max_scan_hosts:
                    return targets
        return targets

    async def scan_local_network(self, deadline: float, registry: DeviceRegistry) -> DiscoveryResult:
        """Probe common IoT ports on local hosts with bounded concurrency"""
        start_time = time.time()
        targets = self.generate_scan_targets()
        found: List[DiscoveredDevice] = []
        semaphore = asyncio.Semaphore(self.max_concurrent_probes)

        logger.info(f"[SCAN] Probing {len(targets)} hosts on ports {self.scan_ports}")

        async with create_probe_session(self.probe_timeout, self.max_concurrent_probes) as session:

            async def scan_single_host(ip: str):
                async with semaphore:
                    device = await self._probe_host(session, ip, deadline)
                    if device:
                        found.append(device)
                        registry.add(device)
                        logger.info(f"[OK] HTTP scan found: {device.name} ({ip}:{device.metadata['port']})")

            await asyncio.gather(*(scan_single_host(ip) for ip in targets), return_exceptions=True)

        duration = time.time() - start_time
        return DiscoveryResult(found, "http_scan", duration, len(targets), len(found))

    async def _probe_host(self, session: aiohttp.ClientSession, ip: str,
                          deadline: float) -> Optional[DiscoveredDevice]:
        """Try ports in order; one answering port is enough"""
        loop = asyncio.get_running_loop()
        for port in self.scan_ports:
            if loop.time() >= deadline:
                return None
            device = await self.probe_endpoint(session, ip, port)
            if device:
                return device
        return None

    async def probe_endpoint(self, session: aiohttp.ClientSession, ip: str,
                             port: int) -> Optional[DiscoveredDevice]:
        """Single bounded HTTP GET; any failure means 'nothing here'"""
        url = f"http://{ip}:{port}/"
        try:
            async with session.get(url, max_redirects=MAX_REDIRECTS) as response:
                if not 200 <= response.status < 300:
                    logger.debug(f"HTTP {response.status} for {url}")
                    return None
                raw = await response.content.read(MAX_BODY_BYTES)
                server = response.headers.get('Server', '')
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Probe failed for {url}: {e!r}")
            return None

        body = raw.decode('utf-8', errors='ignore')
        return self.http_response_to_device(ip, port, body, server)

    @staticmethod
    def http_response_to_device(ip: str, port: int, body: str, server: str = "") -> DiscoveredDevice:
        """Classify an answering HTTP endpoint from its body and Server header"""
        classification = classify_http_body(f"{server}\n{body}")
        if classification:
            device_type, provider, capabilities = classification
        else:
            device_type, provider, capabilities = DeviceType.OTHER, "http", ["http_request"]

        name = extract_title(body) or f"Device {ip}"
        if device_type == DeviceType.OTHER:
            device_type, provider, capabilities = refine_by_name(name, device_type, provider, capabilities)

        metadata = {"ip": ip, "port": port}
        if provider != "http":
            metadata["manufacturer"] = provider

        return DiscoveredDevice(
            id=f"{provider}-{ip}-{port}",
            name=name,
            type=device_type,
            connection_type=ConnectionType.WIFI,
            provider=provider,
            capabilities=capabilities,
            metadata=metadata,
        )
