import sys

import numpy as np
from rich.console import Console
from rich.table import Table

from client_io import Client, InputDistributor, client_port
from errors import ConfigurationError
from field import decode_specification
from orchestrator import matrix_table
from synthetic import fill_random_values

console = Console()
err_console = Console(stderr=True)

USAGE = (
    "Usage: kmeans-client <client identifier> <number of parties> "
    "<number of n data points> <dimensions of data points> <number of total k centroids> "
    "<finish (0 false; 1 true)> <optional host names> <optional port base>"
)


def fail(message):
    err_console.print(message, markup=False)
    sys.exit(1)


def parse_args(argv):
    """
    Parse the positional client arguments.

    Returns:
        dict or None: None when too few arguments were given.

    Raises:
        ConfigurationError: for malformed numbers or a short hostname list.
    """
    if len(argv) < 6:
        return None

    try:
        client_id, num_parties, n_size, dim, k_size, finish = (int(each) for each in argv[:6])
    except ValueError as e:
        raise ConfigurationError(f"Invalid argument: {e}") from e

    if num_parties != 3:
        raise ConfigurationError(
            f"{num_parties} parties not supported, replicated sharing needs 3"
        )

    hostnames = ["localhost"] * num_parties
    if len(argv) > 6:
        if len(argv) < 6 + num_parties:
            raise ConfigurationError(
                "Not enough hostnames specified; Must specify a host for each party."
            )
        hostnames = argv[6 : 6 + num_parties]

    port_base = 14000
    if len(argv) > 6 + num_parties:
        try:
            port_base = int(argv[6 + num_parties])
        except ValueError as e:
            raise ConfigurationError(f"Invalid port base: {e}") from e

    return {
        "client_id": client_id,
        "num_parties": num_parties,
        "n_size": n_size,
        "dim": dim,
        "k_size": k_size,
        "finish": bool(finish),
        "hostnames": hostnames,
        "port_base": port_base,
    }


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv

    try:
        args = parse_args(argv)
    except ConfigurationError as e:
        fail(str(e))

    if args is None:
        console.print(USAGE, markup=False)
        sys.exit(0)

    table = Table(title="Client arguments")
    table.add_column("Argument")
    table.add_column("Value", justify="right", style="cyan")
    table.add_row("Client ID", str(args["client_id"]))
    table.add_row("Number of parties", str(args["num_parties"]))
    table.add_row("Data points (n_size)", str(args["n_size"]))
    table.add_row("Dimensions (dim)", str(args["dim"]))
    table.add_row("Number of centroids (k_size)", str(args["k_size"]))
    table.add_row("Finish flag", str(args["finish"]))
    console.print(table)
    for i, host in enumerate(args["hostnames"]):
        console.print(f"Hostname for party {i}: {host}, port {client_port(args['port_base'], i)}")
    console.print(f"Port base: {args['port_base']}")

    rng = np.random.default_rng()
    n_points = fill_random_values(rng, args["n_size"], args["dim"])
    k_points = fill_random_values(rng, args["k_size"], args["dim"])
    console.print(matrix_table(n_points, "N"))
    console.print(matrix_table(k_points, "K"))

    client = Client.connect(args["hostnames"], args["port_base"], args["client_id"])
    try:
        client.send_finish(args["finish"])

        try:
            domain = decode_specification(client.specification)
        except ConfigurationError as e:
            fail(str(e))
        console.print(f"Computation domain: {domain!r}")

        distributor = InputDistributor(client, domain)
        console.print("Sending N")
        distributor.submit(n_points)
        console.print("Sending K")
        distributor.submit(k_points)
    finally:
        client.close()

    console.print("Kmeans client completed successfully.")


if __name__ == "__main__":
    main()
