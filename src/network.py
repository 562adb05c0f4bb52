import enum
import errno
import pickle
import queue
import socket
import threading
import time

from rich.console import Console

from errors import PeerUnreachable

console = Console()


class SIGNAL(enum.Enum):
    TERMINAL = 0x01


def frame(data):
    data = pickle.dumps(data)
    return int.to_bytes(len(data), 4, "big") + data


class BasePlayer:
    """
    Message routing shared by the socket and in-process players.

    Peers are addressed by offset: -1 is the previous player (mod 3), 1 the
    next one. Offsets -2 and 2 are folded onto 1 and -1.
    """

    player_id: int
    num_players: int

    bytes_sent: int
    bytes_recv: int

    def __init__(self, player_id, num_players=3, debug=False):
        self.player_id = player_id
        self.num_players = num_players
        self.bytes_sent = 0
        self.bytes_recv = 0
        self.log_file = open(f"player_{player_id}.log", "w") if debug else None

    @staticmethod
    def _peer_index(player_offset):
        if player_offset == -2:
            player_offset = 1
        elif player_offset == 2:
            player_offset = -1
        assert player_offset in (-1, 1), f"Invalid player offset {player_offset}"
        return (player_offset + 1) >> 1

    def peer_id(self, player_offset):
        return (self.player_id + player_offset) % self.num_players

    def _send_bytes(self, player_idx, data):
        raise NotImplementedError

    def _recv_bytes(self, player_idx):
        raise NotImplementedError

    def send(self, data, player_offset):
        # player_offset = -1 means send to previous player
        # player_offset = 1 means send to next player

        if self.log_file:
            self.log_file.write(f"Send {data} to player {player_offset}\n")

        data = frame(data)
        self.bytes_sent += len(data)
        self._send_bytes(self._peer_index(player_offset), data)

    def recv(self, player_offset):
        # player_offset = -1 means recv from previous player
        # player_offset = 1 means recv from next player

        player_idx = self._peer_index(player_offset)
        raw = self._recv_bytes(player_idx)
        self.bytes_recv += len(raw)
        data = pickle.loads(raw)

        if data is SIGNAL.TERMINAL:
            raise PeerUnreachable(self.peer_id(player_offset), "peer disconnected")

        if self.log_file:
            self.log_file.write(f"Received {data} from player {player_offset}\n")

        return data

    def pass_around(self, data, offset=1):
        self.send(data, offset)
        return self.recv(-offset)

    def broadcast(self, data):
        self.send(data, 1)
        self.send(data, -1)

    def disconnect(self):
        if self.log_file:
            self.log_file.close()
            self.log_file = None


class Player(BasePlayer):
    """
    TCP player for a 3-party ring.

    Every player listens on ``port_base + player_id``, connects to the next
    player and accepts the previous one, so each pair shares one full-duplex
    connection.
    """

    parties: list  # parties[0] is party_{player_id - 1 (mod 3)}
    # , parties[1] is party_{player_id + 1 (mod 3)}
    recv_buffers: list

    base_port: int = 14000

    def __init__(
        self,
        player_id,
        num_players=3,
        port_base=None,
        hostnames=None,
        debug=False,
        connect_timeout=60,
    ):
        super().__init__(player_id, num_players, debug=debug)
        self.parties = [None] * (num_players - 1)

        if port_base is not None:
            self.base_port = port_base

        self.hostnames = hostnames or ["127.0.0.1"] * num_players
        bind_host = "127.0.0.1" if hostnames is None else "0.0.0.0"

        server_thread = threading.Thread(
            target=self.start_server, args=(bind_host,), daemon=True
        )
        server_thread.start()

        next_id = (player_id + 1) % num_players
        for _ in range(connect_timeout):
            if self.connect_to_player(next_id, self.hostnames[next_id]):
                break
            time.sleep(1)
        else:
            raise PeerUnreachable(
                next_id, f"failed to connect after {connect_timeout} seconds"
            )

        server_thread.join(connect_timeout)
        if self.parties[0] is None:
            raise PeerUnreachable(
                (player_id - 1) % num_players,
                f"no connection within {connect_timeout} seconds",
            )

        self.recv_buffers = [b"" for _ in range(num_players - 1)]
        self.closed = [False for _ in range(num_players - 1)]
        self.conds = [threading.Condition() for _ in range(num_players - 1)]

        self.TERMINAL = frame(SIGNAL.TERMINAL)

        self.recv_threads = [
            threading.Thread(target=self._recv_handler, args=(i,), daemon=True)
            for i in range(num_players - 1)
        ]

        for thread in self.recv_threads:
            thread.start()

    def disconnect(self):
        try:
            self.broadcast(SIGNAL.TERMINAL)
        except PeerUnreachable:
            pass
        for thread in self.recv_threads:
            thread.join()
        for party in self.parties:
            party.close()
        super().disconnect()

    def handle_client(self, client_socket: socket.socket):
        console.print(f"Got connection from {client_socket.getpeername()}")
        self.parties[0] = client_socket

    def start_server(self, host="127.0.0.1", port=None):
        if port is None:
            port = self.player_id + self.base_port

        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        for _ in range(60):
            try:
                server.bind((host, port))
                break
            except OSError as e:
                if e.errno == errno.EADDRINUSE:
                    time.sleep(1)
                else:
                    raise e

        server.listen(5)

        console.print(f"Player {self.player_id} waiting for connections on port {port}...")

        client_sock, addr = server.accept()
        server.close()
        self.handle_client(client_sock)

    def connect_to_player(self, player_id, player_host="127.0.0.1", player_port=None):
        if player_port is None:
            player_port = player_id + self.base_port

        client = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        try:
            client.connect((player_host, player_port))
        except ConnectionRefusedError:
            client.close()
            return False

        self.parties[1] = client
        return True

    def _send_bytes(self, player_idx, data):
        try:
            self.parties[player_idx].sendall(data)
        except OSError as e:
            raise PeerUnreachable(self.peer_id(2 * player_idx - 1), str(e)) from e

    def _recv_handler(self, player_index):
        while True:
            try:
                data = self.parties[player_index].recv(4096)
            except OSError:
                data = b""

            with self.conds[player_index]:
                if not data:
                    self.closed[player_index] = True
                    self.conds[player_index].notify_all()
                    break
                self.recv_buffers[player_index] += data
                self.conds[player_index].notify_all()

            if data[-len(self.TERMINAL) :] == self.TERMINAL:
                with self.conds[player_index]:
                    self.closed[player_index] = True
                    self.conds[player_index].notify_all()
                break

    def _recvall(self, player_idx, size):
        with self.conds[player_idx]:
            while len(self.recv_buffers[player_idx]) < size:
                if self.closed[player_idx]:
                    raise PeerUnreachable(self.peer_id(2 * player_idx - 1))
                self.conds[player_idx].wait()
            data = self.recv_buffers[player_idx][:size]
            self.recv_buffers[player_idx] = self.recv_buffers[player_idx][size:]
        return data

    def _recv_bytes(self, player_idx):
        size = int.from_bytes(self._recvall(player_idx, 4), "big")
        return self._recvall(player_idx, size)


class LocalNetwork:
    """In-process mailboxes connecting the players of a single-process simulation."""

    def __init__(self, num_players=3, timeout=30.0):
        self.num_players = num_players
        self.timeout = timeout
        self.mailboxes = {
            (src, dst): queue.Queue()
            for src in range(num_players)
            for dst in range(num_players)
            if src != dst
        }

    def player(self, player_id, debug=False):
        return LocalPlayer(self, player_id, debug=debug)


class LocalPlayer(BasePlayer):
    def __init__(self, network: LocalNetwork, player_id, debug=False):
        super().__init__(player_id, network.num_players, debug=debug)
        self.network = network

    def _send_bytes(self, player_idx, data):
        dst = self.peer_id(2 * player_idx - 1)
        self.network.mailboxes[(self.player_id, dst)].put(data[4:])

    def _recv_bytes(self, player_idx):
        src = self.peer_id(2 * player_idx - 1)
        try:
            return self.network.mailboxes[(src, self.player_id)].get(
                timeout=self.network.timeout
            )
        except queue.Empty:
            raise PeerUnreachable(
                src, f"no message within {self.network.timeout} seconds"
            ) from None


class Channel:
    """Framed, blocking connection between a client and one computing party."""

    def __init__(self, sock: socket.socket, peer="party"):
        self.sock = sock
        self.peer = peer

    @classmethod
    def connect(cls, host, port, peer="party", timeout=60):
        for _ in range(timeout):
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                sock.connect((host, port))
                return cls(sock, peer)
            except ConnectionRefusedError:
                sock.close()
                time.sleep(1)
        raise PeerUnreachable(peer, f"failed to connect to {host}:{port}")

    def send(self, data):
        try:
            self.sock.sendall(frame(data))
        except OSError as e:
            raise PeerUnreachable(self.peer, str(e)) from e

    def _recvall(self, size):
        data = b""
        while len(data) < size:
            try:
                chunk = self.sock.recv(size - len(data))
            except OSError as e:
                raise PeerUnreachable(self.peer, str(e)) from e
            if not chunk:
                raise PeerUnreachable(self.peer)
            data += chunk
        return data

    def recv(self):
        size = int.from_bytes(self._recvall(4), "big")
        return pickle.loads(self._recvall(size))

    def close(self):
        self.sock.close()
