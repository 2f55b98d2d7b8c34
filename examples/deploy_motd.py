import logging
import sys

import fleetlink

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

# This example looks a node up in a directory of JSON node records, connects
# to it through the provisioner that created it and converges a file.
#
#   nodes/web1.json:
#   {"name": "web1", "normal": {"provisioner_output": {
#       "provisioner_url": "ssh:web1", "host": "web1.example.com", "username": "deploy",
#       "options": {"prefix": "sudo "}}}}

name = sys.argv[1] if len(sys.argv) > 1 else "web1"
machine, provisioner = fleetlink.connect_to_machine(name, fleetlink.DirectoryNodeStore("nodes"))

with machine:
    if not machine.available():
        sys.exit(f"{name} is not reachable")

    desired = f"{name} is managed by fleetlink\n".encode()
    try:
        current = machine.read_file("/etc/motd")
    except FileNotFoundError:
        current = b""
    if current != desired:
        # Writes go through a staging file and a prefixed mv because of "sudo "
        machine.write_file("/etc/motd", desired)
        print("motd updated")

    # Streams remote output live while capturing it
    machine.execute("uptime", stream=True).raise_for_status()
