"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite-based persistence for compiled networks.

Networks are pickled into a BLOB next to queryable metadata (layer sizes,
training state, final loss). The blob format carries no compatibility
guarantee between package versions.
"""

import sqlite3
import pickle
import json
import os
import logging
from typing import Optional, List, Dict, Any, Generator
from contextlib import contextmanager
import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = 'models'
DB_FILENAME = 'networks.db'


class NetworkEncoder(json.JSONEncoder):
    """JSON encoder that understands numpy scalars and arrays."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        return super().default(obj)


def _layer_shapes(architecture: List[int]) -> Dict[str, List[List[int]]]:
    """Weight and bias shapes of the compiled layers for an architecture."""
    return {
        'weights_shape': [
            [architecture[i + 1], architecture[i]]
            for i in range(len(architecture) - 1)
        ],
        'biases_shape': [
            [architecture[i + 1], 1]
            for i in range(len(architecture) - 1)
        ],
    }


class ModelDatabase:
    """
    Manages the SQLite database holding saved networks.

    The database stores:
    - Network metadata (layer sizes, training status, final loss)
    - Serialized network objects as binary blobs
    """

    def __init__(self, db_path: str = os.path.join(DEFAULT_MODEL_DIR, DB_FILENAME)):
        """
        Initialize the database, creating the file and schema if needed.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Commits on success, rolls back and re-raises on error.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    network_data BLOB NOT NULL,
                    trained INTEGER NOT NULL DEFAULT 0,
                    loss REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_trained
                ON networks(trained)
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    def save_network_to_db(
        self,
        network,
        network_id: str,
        trained: bool = True,
        loss: Optional[float] = None
    ) -> bool:
        """
        Save a network, replacing any network stored under the same id.

        The original creation time is kept when a network is replaced.

        Args:
            network: Network object to save
            network_id: Unique identifier for the network
            trained: Whether the network has been trained
            loss: Final training loss (non-negative)

        Returns:
            bool: True if successful

        Raises:
            ValueError: If loss is negative
        """
        if loss is not None and loss < 0.0:
            raise ValueError(f"Loss must be non-negative, got {loss}")

        network_data = pickle.dumps(network)
        architecture_json = json.dumps(network.sizes, cls=NetworkEncoder)

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, network_data, trained, loss, updated_at)
                VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    network_data = excluded.network_data,
                    trained = excluded.trained,
                    loss = excluded.loss,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                architecture_json,
                network_data,
                1 if trained else 0,
                loss
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, trained={trained}, loss={loss}"
        )
        return True

    def load_network_from_db(self, network_id: str):
        """
        Load a network.

        Args:
            network_id: Unique identifier of the network

        Returns:
            Network object or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

            if row is None:
                logger.warning(f"Network '{network_id}' not found")
                return None

            network = pickle.loads(row['network_data'])
            logger.info(f"Loaded network '{network_id}'")
            return network

    def _row_to_metadata(self, row: sqlite3.Row) -> Dict[str, Any]:
        architecture = json.loads(row['architecture'])
        metadata = {
            'network_id': row['network_id'],
            'architecture': architecture,
            'trained': bool(row['trained']),
            'loss': row['loss'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }
        metadata.update(_layer_shapes(architecture))
        return metadata

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """List all networks with metadata, newest first."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, trained, loss,
                       created_at, updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')
            networks = [self._row_to_metadata(row) for row in cursor.fetchall()]

        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network.

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(
                    f"Could not delete network '{network_id}': not found"
                )
            return deleted

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Args:
            days: Age threshold in days (0 deletes everything created
                before now)

        Returns:
            int: Number of deleted networks

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without unpickling the network.

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, trained, loss,
                       created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))

            row = cursor.fetchone()
            if row is None:
                logger.warning(
                    f"Metadata for network '{network_id}' not found"
                )
                return None

            return self._row_to_metadata(row)


# One database instance per path
_databases: Dict[str, ModelDatabase] = {}


def _resolve_model_dir(model_dir: Optional[str]) -> str:
    if model_dir is None:
        return os.getenv('MODEL_DIR', DEFAULT_MODEL_DIR)
    return model_dir


def _get_db(model_dir: Optional[str] = None) -> ModelDatabase:
    """
    Get or create the database instance for a model directory.

    Args:
        model_dir: Directory holding networks.db (MODEL_DIR env var, or
            'models', when omitted)

    Returns:
        ModelDatabase: The database instance
    """
    db_path = os.path.join(_resolve_model_dir(model_dir), DB_FILENAME)
    db = _databases.get(db_path)
    if db is None or not os.path.exists(db_path):
        db = ModelDatabase(db_path=db_path)
        _databases[db_path] = db
    return db


def _valid_id(network_id: Any) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def save_network(
    network,
    network_id: str,
    model_dir: Optional[str] = None,
    trained: bool = True,
    loss: Optional[float] = None
) -> bool:
    """
    Save a network to the SQLite database.

    Args:
        network: The network object to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        trained: Whether the network has been trained
        loss: Final training loss of the network

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = Network.from_topology([2, 3, 1])
        >>> save_network(net, "xor", trained=False)
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).save_network_to_db(network, network_id, trained, loss)

    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except (AttributeError, pickle.PicklingError) as e:
        logger.error(
            f"Serialization error saving network '{network_id}': {e}"
        )
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def load_network(network_id: str, model_dir: Optional[str] = None):
    """
    Load a network from the SQLite database.

    Returns:
        The loaded network or None if not found

    Example:
        >>> net = load_network("xor")
        >>> if net:
        ...     print(net.feed_forward([1.0, 0.0]))
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)

    except (pickle.UnpicklingError, AttributeError, ImportError) as e:
        logger.error(
            f"Deserialization error loading network '{network_id}': {e}"
        )
        return None
    except sqlite3.Error as e:
        logger.error(
            f"Database error loading network '{network_id}': {e}"
        )
        return None


def list_saved_networks(
    model_dir: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Returns:
        list: A metadata dictionary per saved network

    Example:
        >>> for net in list_saved_networks():
        ...     print(f"{net['network_id']}: {net['architecture']}")
    """
    try:
        return _get_db(model_dir).list_networks_from_db()

    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: Optional[str] = None) -> bool:
    """
    Delete a saved network.

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def delete_old_networks(days: int = 2, model_dir: Optional[str] = None) -> int:
    """
    Delete saved networks older than the given number of days.

    Args:
        days: Age threshold in days
        model_dir: Directory where the database is stored

    Returns:
        int: Number of deleted networks, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)

    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1


def get_network_metadata(
    network_id: str,
    model_dir: Optional[str] = None
) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a network without loading the network itself.

    Returns:
        dict: Network metadata or None if not found

    Example:
        >>> metadata = get_network_metadata("xor")
        >>> if metadata:
        ...     print(f"Loss: {metadata['loss']}")
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)

    except sqlite3.Error as e:
        logger.error(
            f"Database error getting metadata for '{network_id}': {e}"
        )
        return None
    except json.JSONDecodeError as e:
        logger.error(
            f"JSON decode error getting metadata for '{network_id}': {e}"
        )
        return None
