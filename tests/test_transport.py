import errno
from typing import Any, Dict, List, Set

import pytest
import serial
from conftest import RecordingTransport

from receipt_dispatch.core.errors import CloseError, DeviceNotOpen, TransportOpenError, TransportWriteError
from receipt_dispatch.printing.executor import JobExecutor
from receipt_dispatch.printing.models import PrintJob, PrintMode
from receipt_dispatch.printing.scheduler import PrintScheduler
from receipt_dispatch.printing import transport as tr
from receipt_dispatch.printing.transport import (
    SerialTarget,
    SerialTransport,
    UsbTarget,
    UsbTransport,
    open_transport,
    target_from_identifier,
)


class FakeSerial:
    """Stands in for serial.Serial; records construction and calls."""

    instances: List["FakeSerial"] = []
    open_error: Any = None
    stalled_ports: Set[str] = set()

    def __init__(self, port=None, **kwargs: Any) -> None:
        self.port = port
        self.kwargs: Dict[str, Any] = kwargs
        self.is_open = False
        self.written: List[bytes] = []
        self.flushes = 0
        self.fail_write = False
        self.out_waiting = 0
        FakeSerial.instances.append(self)

    def open(self) -> None:
        if FakeSerial.open_error is not None:
            raise FakeSerial.open_error
        self.is_open = True

    def write(self, data: bytes) -> int:
        if self.port in FakeSerial.stalled_ports:
            raise serial.SerialTimeoutException("Write timeout")
        if self.fail_write:
            raise serial.SerialException("write failed: device reports readiness to read but returned no data")
        self.written.append(data)
        return len(data)

    def flush(self) -> None:
        self.flushes += 1

    def close(self) -> None:
        self.is_open = False


@pytest.fixture
def fake_serial(monkeypatch):
    FakeSerial.instances = []
    FakeSerial.open_error = None
    FakeSerial.stalled_ports = set()
    monkeypatch.setattr(tr.serial, "Serial", FakeSerial)
    return FakeSerial


def test_serial_open_always_enables_rtscts(fake_serial):
    t = SerialTransport("/dev/rfcomm0", baudrate=9600)
    t.open()

    dev = fake_serial.instances[0]
    assert dev.port == "/dev/rfcomm0"
    assert dev.kwargs["rtscts"] is True
    assert dev.kwargs["baudrate"] == 9600
    assert t.is_open


def test_serial_write_drain_close(fake_serial):
    t = SerialTransport("/dev/ttyUSB0")
    t.open()
    t.write(b"abc")
    t.drain()
    dev = fake_serial.instances[0]
    assert dev.written == [b"abc"]
    assert dev.flushes == 1

    t.close()
    assert not dev.is_open
    assert not t.is_open
    # Second close is a no-op
    t.close()


@pytest.mark.parametrize(
    "exc,reason",
    [
        (serial.SerialException(errno.ENOENT, "could not open port: No such file or directory"), "not_found"),
        (serial.SerialException(errno.EACCES, "could not open port: Permission denied"), "permission_denied"),
        (serial.SerialException(errno.EBUSY, "could not open port: Device or resource busy"), "busy"),
        (serial.SerialException("could not open port 'COM5': PermissionError(13, 'Access is denied.')"), "permission_denied"),
    ],
)
def test_serial_open_errors_are_classified(fake_serial, exc, reason):
    fake_serial.open_error = exc
    t = SerialTransport("/dev/ttyS9")
    with pytest.raises(TransportOpenError) as ei:
        t.open()
    assert ei.value.reason == reason
    assert not t.is_open


def test_serial_disconnect_nulls_handle_and_notifies(fake_serial):
    t = SerialTransport("/dev/rfcomm0")
    seen = []
    t.add_disconnect_listener(lambda transport, exc: seen.append((transport, exc)))
    t.open()
    fake_serial.instances[0].fail_write = True

    with pytest.raises(TransportWriteError):
        t.write(b"data")
    assert not t.is_open
    assert len(seen) == 1 and seen[0][0] is t

    with pytest.raises(DeviceNotOpen):
        t.write(b"more")


def test_close_is_idempotent_when_never_opened():
    SerialTransport("/dev/ttyUSB0").close()
    UsbTransport(0x0416, 0x5011).close()
    t = RecordingTransport()
    t.close()
    t.close()
    assert "close" not in t.events


def test_write_before_open_raises_device_not_open():
    with pytest.raises(DeviceNotOpen):
        RecordingTransport().write(b"x")
    with pytest.raises(DeviceNotOpen):
        RecordingTransport().drain()


def test_close_failure_surfaces_as_close_error_and_still_releases():
    t = RecordingTransport(fail_close=True)
    t.open()
    with pytest.raises(CloseError):
        t.close()
    assert not t.is_open
    t.close()


def test_usb_without_pyusb_is_a_soft_open_failure(monkeypatch):
    monkeypatch.setattr(tr, "usb_supported", lambda: False)
    t = UsbTransport(0x0416, 0x5011)
    with pytest.raises(TransportOpenError) as ei:
        t.open()
    assert ei.value.reason == TransportOpenError.UNSUPPORTED


@pytest.mark.parametrize(
    "ident,expected",
    [
        ("COM5", SerialTarget("COM5", 115200)),
        ("com3", SerialTarget("com3", 115200)),
        ("/dev/ttyUSB0", SerialTarget("/dev/ttyUSB0", 115200)),
        ("/dev/rfcomm0", SerialTarget("/dev/rfcomm0", 115200)),
        ("usb:04b8:0e28", UsbTarget(0x04B8, 0x0E28)),
        ("0x04b8:0x0e28", UsbTarget(0x04B8, 0x0E28)),
        ("", UsbTarget(0x0416, 0x5011)),
        (None, UsbTarget(0x0416, 0x5011)),
    ],
)
def test_target_from_identifier(ident, expected):
    assert target_from_identifier(ident) == expected


def test_target_from_identifier_uses_requested_baudrate():
    assert target_from_identifier("/dev/rfcomm0", 9600) == SerialTarget("/dev/rfcomm0", 9600)
    assert target_from_identifier("/dev/rfcomm0", default_baudrate=19200).baudrate == 19200


def test_open_transport_maps_targets():
    assert isinstance(open_transport(SerialTarget("/dev/ttyS0", 9600)), SerialTransport)
    usb = open_transport(UsbTarget(1, 2))
    assert isinstance(usb, UsbTransport)
    assert usb.describe() == "usb:0001:0002"
    with pytest.raises(TypeError):
        open_transport("COM1")  # type: ignore[arg-type]


def test_list_serial_devices(monkeypatch):
    class Port:
        def __init__(self, device, description, manufacturer):
            self.device = device
            self.description = description
            self.manufacturer = manufacturer

    ports = [Port("/dev/ttyUSB0", "USB Serial", "FTDI"), Port("/dev/rfcomm0", "n/a", None)]
    monkeypatch.setattr(tr.list_ports, "comports", lambda: ports)

    assert tr.list_serial_devices() == [
        {"id": "/dev/rfcomm0", "name": "/dev/rfcomm0", "manufacturer": None},
        {"id": "/dev/ttyUSB0", "name": "USB Serial", "manufacturer": "FTDI"},
    ]


def test_open_transport_bounds_serial_writes(fake_serial):
    t = open_transport(SerialTarget("/dev/rfcomm0"), write_timeout=2.5)
    t.open()
    assert fake_serial.instances[0].kwargs["write_timeout"] == 2.5


def test_serial_write_timeout_is_a_write_error(fake_serial):
    fake_serial.stalled_ports = {"/dev/rfcomm0"}
    t = SerialTransport("/dev/rfcomm0", write_timeout=0.05)
    t.open()

    with pytest.raises(TransportWriteError) as ei:
        t.write(b"data")
    assert isinstance(ei.value.__cause__, serial.SerialTimeoutException)
    assert not t.is_open


def test_serial_drain_gives_up_when_output_never_empties(fake_serial):
    t = SerialTransport("/dev/ttyUSB0", write_timeout=0.05)
    t.open()
    fake_serial.instances[0].out_waiting = 12

    with pytest.raises(TransportWriteError):
        t.drain()
    assert fake_serial.instances[0].flushes == 0


def test_stalled_printer_does_not_block_the_queue(fake_serial):
    fake_serial.stalled_ports = {"/dev/rfcomm0"}
    factory = lambda target: open_transport(target, write_timeout=0.05)  # noqa: E731
    sched = PrintScheduler(JobExecutor(transport_factory=factory), sleep=lambda delay: None)
    stalled = PrintJob(target=SerialTarget("/dev/rfcomm0"), mode=PrintMode.SIMPLE)
    healthy = PrintJob(target=SerialTarget("/dev/ttyUSB0"), mode=PrintMode.SIMPLE)

    sched.submit(stalled)
    sched.submit(healthy)

    first = stalled.future.result(timeout=5)
    assert first.success is False
    assert "Write timeout" in first.error
    assert healthy.future.result(timeout=5).success is True
    assert sched.wait_idle(timeout=5)
