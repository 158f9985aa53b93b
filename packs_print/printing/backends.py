"""
Raw device access for the print executor.

A backend offers three primitives: an accessibility check, an out-of-band
status read returning the raw status byte, and a blocking byte-stream write.

- LinePrinterDevice: Linux line-printer character device (/dev/usb/lp0),
  status via the LPGETSTATUS ioctl
- EscposDevice: USB, network or serial printers through python-escpos,
  payload sent raw
"""

from __future__ import annotations

import array
import errno
import logging
import os
from typing import Any, Mapping, Optional, Protocol

from .device import STATUS_ERROR, STATUS_PAPER_OUT, STATUS_READY
from .errors import DeviceWriteError

logger = logging.getLogger(__name__)

LPGETSTATUS = 0x060B

# ioctl errnos meaning "this file cannot report lp status", not "device gone"
_NO_STATUS_ERRNOS = (errno.ENOTTY, errno.EINVAL)


class DeviceBackend(Protocol):
    def is_accessible(self) -> bool: ...

    def read_status(self) -> Optional[int]: ...

    def write(self, payload: bytes) -> int: ...

    def close(self) -> None: ...


class LinePrinterDevice:
    def __init__(self, path: str) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"LinePrinterDevice({self.path!r})"

    def is_accessible(self) -> bool:
        return os.access(self.path, os.W_OK)

    def read_status(self) -> Optional[int]:
        """
        Read the status byte with LPGETSTATUS. Files that do not support the
        ioctl (development setups) report ready. Raises OSError when the
        device cannot be opened.
        """
        try:
            import fcntl
        except ImportError:
            logger.debug("fcntl unavailable; reporting %s as ready", self.path)
            return STATUS_READY

        fd = os.open(self.path, os.O_RDWR | os.O_NONBLOCK)
        try:
            buf = array.array("i", [0])
            try:
                fcntl.ioctl(fd, LPGETSTATUS, buf, True)
            except OSError as e:
                if e.errno in _NO_STATUS_ERRNOS:
                    logger.debug("%s does not support LPGETSTATUS; reporting ready", self.path)
                    return STATUS_READY
                raise
            return buf[0] & 0xFF
        finally:
            os.close(fd)

    def write(self, payload: bytes) -> int:
        written = 0
        view = memoryview(payload)
        try:
            with open(self.path, "wb", buffering=0) as fh:
                while written < len(payload):
                    n = fh.write(view[written:])
                    if not n:
                        raise DeviceWriteError(
                            f"Short write to {self.path}: {written}/{len(payload)} bytes", bytes_written=written
                        )
                    written += n
        except OSError as e:
            raise DeviceWriteError(f"Failed to send to printer: {e}", bytes_written=written) from e
        return written

    def close(self) -> None:
        return None


def _connect_printer(config: Mapping[str, Any]):
    """
    Create an ESC/POS printer instance based on the provided config.
    Supports USB, Network, and Serial with optional 'printer_profile'.
    """
    profile = config.get("printer_profile") or None
    ptype = str(config.get("printer_type", "usb")).lower()
    kwargs = {"profile": profile} if profile else {}

    if ptype == "usb":
        from escpos.printer import Usb

        vendor = int(str(config.get("usb_vendor_id", "0x04b8")), 16)
        product = int(str(config.get("usb_product_id", "0x0e28")), 16)
        return Usb(vendor, product, **kwargs)
    if ptype == "network":
        from escpos.printer import Network

        ip = str(config.get("network_ip", ""))
        port = int(str(config.get("network_port", "9100")))
        return Network(ip, port, **kwargs)
    if ptype == "serial":
        from escpos.printer import Serial

        port = str(config.get("serial_port", ""))
        baud = int(str(config.get("serial_baudrate", "19200")))
        return Serial(port, baudrate=baud, **kwargs)
    raise RuntimeError(f"Unsupported printer type: {ptype}")


class EscposDevice:
    def __init__(self, config: Mapping[str, Any]) -> None:
        self.config = dict(config)
        self._printer = None

    def __repr__(self) -> str:
        return f"EscposDevice({self.config.get('printer_type')!r})"

    def _ensure(self):
        if self._printer is None:
            p = _connect_printer(self.config)
            p.open()
            self._printer = p
        return self._printer

    def _reset(self) -> None:
        p, self._printer = self._printer, None
        if p is not None:
            try:
                p.close()
            except Exception as e:
                logger.debug("Ignoring printer close error: %s", e)

    def is_accessible(self) -> bool:
        try:
            self._ensure()
            return True
        except Exception as e:
            logger.debug("ESC/POS printer unreachable: %s", e)
            self._reset()
            return False

    def read_status(self) -> Optional[int]:
        p = self._ensure()
        try:
            if not p.is_online():
                return STATUS_ERROR
            # 2: paper adequate, 1: near end, 0: no paper
            return STATUS_PAPER_OUT if p.paper_status() == 0 else STATUS_READY
        except NotImplementedError:
            return STATUS_READY
        except Exception:
            self._reset()
            raise

    def write(self, payload: bytes) -> int:
        try:
            self._ensure()._raw(payload)
        except Exception as e:
            self._reset()
            raise DeviceWriteError(f"Failed to send to printer: {e}") from e
        return len(payload)

    def close(self) -> None:
        self._reset()


def connect_device(config: Mapping[str, Any]) -> DeviceBackend:
    """Build the backend selected by ``printer_type`` (lp, usb, network, serial)."""
    ptype = str(config.get("printer_type", "lp")).lower()
    if ptype == "lp":
        return LinePrinterDevice(str(config.get("device", "/dev/usb/lp0")))
    if ptype in ("usb", "network", "serial"):
        return EscposDevice(config)
    raise RuntimeError(f"Unsupported printer type: {ptype}")


__all__ = ["DeviceBackend", "EscposDevice", "LPGETSTATUS", "LinePrinterDevice", "connect_device"]
