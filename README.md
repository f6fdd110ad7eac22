# qdbhost

Host-side building blocks for a debug bridge that talks to embedded devices
over USB: choosing a subnet for the host–device network, keeping the host log,
running the small request/response services on a device stream, and tracking
which bridge devices are plugged in.

## Modules

- **`qdbhost.subnet`**: `Subnet` is an address with a prefix length;
  `Subnet.overlaps` tells whether two subnets share addresses. `SubnetPool`
  holds candidate `/30` subnets (a process-wide one from
  `SubnetPool.instance()`), lists the unreserved ones with `candidates`, and
  hands out reservations with `reserve` (returning `None` if the subnet is
  already reserved). A `SubnetReservation` gives its subnet back on `release`,
  when used as a context manager exits, or when it is garbage collected.
  `find_unused_subnet` returns the first candidate that overlaps none of the
  used subnets, `fetch_used_subnets` lists the subnets of the host's network
  interfaces (via `psutil`), and `reserve_unused_subnet` combines the two.
- **`qdbhost.hostlog`**: `setup_logging` attaches a `HostLogHandler` writing
  to `qdb/qdb.log` in the user's data directory, unless the environment
  variable `QDB_LOGGING_TO_CONSOLE` is `1`. Records of warning level or above
  are also stored in the `MessageLog` singleton, which keeps the latest 200;
  read them with `messages`, empty it with `clear_messages`, and follow new
  ones with `connect(callback)`, which returns a function that disconnects.
  If the log file cannot be opened or written, the handler removes itself.
- **`qdbhost.service`**: `Signal` (connect callbacks, emit to all of them),
  `StreamPacket` (big-endian `uint32` and length-prefixed UTF-16 strings), and
  the abstract `Service`, which owns one stream and reacts to its packets and
  its closing. Using a service that has no stream raises `NoStreamError`;
  reading past the end of a packet raises `PacketError`.
- **`qdbhost.echoservice`**: `EchoService` sends text as UTF-8 and emits
  `echo(text)` for each reply.
- **`qdbhost.handshakeservice`**: `HandshakeService.ask` requests a device's
  serial number, MAC address and IP address; `response(serial, mac, ip)` is
  emitted with the answer, or once with empty strings if the stream closes or
  the connection drops first.
- **`qdbhost.networkconfigurationservice`**: `NetworkConfigurationService`
  sends a subnet such as `"172.16.58.1/30"` and emits `response` with a
  `ConfigurationResult`, or `already_set_response(subnet)` when the device
  already has one. Unknown results, a closed stream or a dropped connection
  before an answer report `ConfigurationResult.FAILURE`.
- **`qdbhost.networkconfigurator`**: `NetworkConfigurator` reserves a free
  subnet for a `UsbDevice`, asks the device to use it, and emits
  `configured(device, success)`. A subnet the device already uses is accepted
  if it parses and can still be reserved.
- **`qdbhost.usbdevice`**: the `UsbAddress` (ordered by bus, then device
  address), `UsbInterfaceInfo` and `UsbDevice` data classes.
- **`qdbhost.usbdeviceenumerator`**: `UsbDeviceEnumerator` lists bridge
  devices sorted by address through a backend object you supply, and while
  monitoring (`start_monitoring`, a background thread polling every
  `poll_interval` seconds) emits `device_plugged_in(device)` and
  `device_unplugged(address)`. `decode_serial_number` decodes a UTF-16 string
  descriptor, dropping characters outside Latin-1 and question marks.
- **`qdbhost.usbconnectionreader`**: `UsbConnectionReader` calls a transfer
  function repeatedly and emits `new_read(data)`. A `TransferTimeout` is not an
  error; after five failures in a row it emits `new_read(b"")` and stops.

## Example

```python
from qdbhost.hostlog import MessageLog
from qdbhost.subnet import SubnetPool, reserve_unused_subnet

pool = SubnetPool.instance()
print(pool.candidates())

reservation = reserve_unused_subnet(pool)
if reservation is not None:
    with reservation:
        print("using", reservation.subnet)

log = MessageLog.instance()
disconnect = log.connect(lambda level, text: print(level, text))
```

## What this package does not do

It does not talk to USB hardware itself: the enumerator and the reader work
through a backend object and a transfer function that you provide. It has no
connection or stream implementation (services are given a connection with
`create_stream` and a `disconnected` signal, the configurator a pool with
`connect`), no host server that clients connect to, and no command-line tool.

## Requirements

Python 3.10 or later and `psutil`.