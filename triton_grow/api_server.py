"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for network training.

This module provides endpoints for:
- Creating and managing feedforward networks
- Training networks on posted datasets with real-time progress updates
- Running predictions
- Persisting networks to/from the SQLite database

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for background training tasks
- SQLite for network persistence
"""

import os
import sys
import uuid
import logging
from typing import Dict, Any, List, Optional

import gevent
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from triton_grow.activations import Activations
from triton_grow.errors import DimensionMismatch, InvalidInput, InvalidState
from triton_grow.modes import Optimizer
from triton_grow.network import ITERATIONS_PER_EPOCH, Network
from triton_grow.model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    LOG_LEVEL picks the level (INFO by default). With FLASK_ENV=production
    the socketio/engineio/werkzeug loggers are reduced to warnings.
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('triton_grow').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

is_production = os.getenv('FLASK_ENV') == 'production'

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not is_production,
    engineio_logger=not is_production,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory: {network_id: network_info}
active_networks: Dict[str, Dict[str, Any]] = {}

# Training jobs being tracked: {job_id: job_info}
training_jobs: Dict[str, Dict[str, Any]] = {}


def default_iterations_per_epoch() -> int:
    """ITERATIONS_PER_EPOCH env var, falling back to the library default."""
    value = os.getenv('ITERATIONS_PER_EPOCH')
    if value is None:
        return ITERATIONS_PER_EPOCH
    try:
        return max(1, int(value))
    except ValueError:
        logger.warning(
            f"Ignoring invalid ITERATIONS_PER_EPOCH={value!r}, "
            f"using {ITERATIONS_PER_EPOCH}"
        )
        return ITERATIONS_PER_EPOCH


def reload_saved_networks() -> None:
    """
    Reload all saved networks from the database into memory.

    Called at startup so active_networks matches what was saved before
    the application restarted.
    """
    saved_networks = list_saved_networks()

    if not saved_networks:
        logger.info("No saved networks to reload")
        return

    loaded_count = 0
    for net_info in saved_networks:
        network_id = net_info['network_id']
        net = load_network(network_id)
        if net is None:
            logger.warning(f"Failed to load network {network_id}")
            continue

        active_networks[network_id] = {
            'network': net,
            'architecture': net_info['architecture'],
            'trained': net_info['trained'],
            'loss': net_info['loss'],
            'training': False
        }
        loaded_count += 1

    logger.info(f"Reloaded {loaded_count} network(s) from database")


reload_saved_networks()

# Training jobs can't survive a restart
training_jobs.clear()


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Background task that runs on startup, then every 24 hours to:
    - Delete networks older than 2 days from the database
    - Drop in-memory networks that are no longer in the database
    - Remove finished training jobs from memory
    """
    while True:
        try:
            logger.info("Starting automatic cleanup of old networks...")
            deleted_count = delete_old_networks(days=2)

            if deleted_count > 0:
                saved_ids = {net['network_id'] for net in list_saved_networks()}
                networks_to_remove = [
                    nid for nid, info in active_networks.items()
                    if nid not in saved_ids and not info.get('training')
                ]
                for nid in networks_to_remove:
                    del active_networks[nid]
                    logger.info(f"Removed network {nid} from memory (deleted from database)")

                logger.info(f"Cleanup completed: deleted {deleted_count} network(s)")
            elif deleted_count == 0:
                logger.info("Cleanup completed: no old networks found to delete")
            else:
                logger.error("Cleanup returned error code")

            cleanup_finished_training_jobs()

            gevent.sleep(86400)

        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def cleanup_finished_training_jobs() -> None:
    """Remove completed or failed training jobs from memory."""
    finished_statuses = {'completed', 'failed'}
    jobs_to_remove = [
        job_id for job_id, job_info in training_jobs.items()
        if job_info.get('status') in finished_statuses
    ]

    for job_id in jobs_to_remove:
        del training_jobs[job_id]

    if jobs_to_remove:
        logger.info(f"Cleaned up {len(jobs_to_remove)} finished training job(s)")


def start_cleanup_task() -> None:
    """
    Start the background cleanup task once.

    Uses gevent.spawn() directly so it also runs under gunicorn.
    """
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


start_cleanup_task()


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def error_response(message: str, status: int):
    return jsonify({'error': message}), status


def is_number_list(values: Any) -> bool:
    return isinstance(values, list) and all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in values
    )


def parse_dataset(data: Dict[str, Any]) -> Optional[str]:
    """Return an error message if the posted dataset is malformed."""
    inputs = data.get('inputs')
    targets = data.get('targets')
    if not isinstance(inputs, list) or not isinstance(targets, list):
        return 'inputs and targets must be lists of samples'
    if not inputs:
        return 'inputs must not be empty'
    if len(inputs) != len(targets):
        return 'inputs and targets must have the same length'
    if not all(is_number_list(sample) for sample in inputs + targets):
        return 'every sample must be a list of numbers'
    return None


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and the number of active networks and jobs."""
    active_statuses = ('pending', 'training')
    active_training = sum(
        1 for job in training_jobs.values()
        if job.get('status') in active_statuses
    )

    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks),
        'training_jobs': active_training
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Create and compile a new network.

    Request body (all optional):
        {
            'layer_sizes': [2, 3, 1],
            'activation': 'sigmoid',
            'learning_rate': 0.1,
            'optimizer': 'sgd',
            'train_all_layers': false,
            'iterations_per_epoch': 10000,
            'seed': null
        }

    Returns:
        JSON with network_id, architecture, and status
    """
    data = request.get_json(silent=True) or {}
    layer_sizes = data.get('layer_sizes', [2, 3, 1])
    learning_rate = data.get('learning_rate', 0.1)
    iterations = data.get('iterations_per_epoch', default_iterations_per_epoch())
    seed = data.get('seed')

    if (not isinstance(layer_sizes, list) or len(layer_sizes) < 2
            or not all(isinstance(s, int) and not isinstance(s, bool) and s > 0
                       for s in layer_sizes)):
        logger.warning(f"Invalid architecture requested: {layer_sizes}")
        return error_response(
            'Invalid architecture. Must have at least 2 positive layer sizes.', 400
        )
    if not isinstance(learning_rate, (int, float)) or learning_rate <= 0:
        return error_response('learning_rate must be a positive number', 400)
    if not isinstance(iterations, int) or iterations < 1:
        return error_response('iterations_per_epoch must be a positive integer', 400)
    if seed is not None and not isinstance(seed, int):
        return error_response('seed must be an integer', 400)

    try:
        activation = Activations.from_name(data.get('activation', 'sigmoid'))
        optimizer = Optimizer(str(data.get('optimizer', 'sgd')).lower())
    except ValueError as e:
        return error_response(str(e), 400)

    network_id = str(uuid.uuid4())
    net = Network.from_topology(
        layer_sizes,
        activation,
        float(learning_rate),
        optimizer,
        iterations_per_epoch=iterations,
        train_all_layers=bool(data.get('train_all_layers', False)),
        seed=seed
    )

    active_networks[network_id] = {
        'network': net,
        'architecture': layer_sizes,
        'trained': False,
        'loss': None,
        'training': False
    }

    logger.info(f"Created network {network_id} with architecture {layer_sizes}")

    return jsonify({
        'network_id': network_id,
        'architecture': layer_sizes,
        'status': 'created'
    }), 201


@app.route('/api/networks/<network_id>/train', methods=['POST'])
def train_network(network_id: str):
    """
    Start training a network in the background.

    Request body:
        {
            'inputs': [[0, 0], [1, 0], [0, 1], [1, 1]],
            'targets': [[0], [1], [1], [0]],
            'epochs': 1
        }

    Returns:
        JSON with job_id, network_id, and status
    """
    if network_id not in active_networks:
        logger.warning(f"Training requested for non-existent network: {network_id}")
        return error_response('Network not found', 404)

    if active_networks[network_id].get('training'):
        return error_response('Network is already training', 409)

    data = request.get_json(silent=True) or {}
    epochs = data.get('epochs', 1)

    if not isinstance(epochs, int) or isinstance(epochs, bool) or epochs < 1:
        return error_response('epochs must be a positive integer', 400)
    dataset_error = parse_dataset(data)
    if dataset_error:
        return error_response(dataset_error, 400)

    net = active_networks[network_id]['network']
    sizes = net.sizes
    if any(len(x) != sizes[0] for x in data['inputs']):
        return error_response(f'every input must have {sizes[0]} values', 400)
    if any(len(y) != sizes[-1] for y in data['targets']):
        return error_response(f'every target must have {sizes[-1]} values', 400)

    job_id = str(uuid.uuid4())

    training_jobs[job_id] = {
        'network_id': network_id,
        'status': 'pending',
        'progress': 0,
        'epochs': epochs
    }
    active_networks[network_id]['training'] = True

    logger.info(
        f"Created training job {job_id} for network {network_id}: "
        f"epochs={epochs}, samples={len(data['inputs'])}"
    )

    socketio.start_background_task(
        train_network_task,
        network_id, job_id, data['inputs'], data['targets'], epochs
    )

    return jsonify({
        'job_id': job_id,
        'network_id': network_id,
        'status': 'training_started'
    }), 202


def train_network_task(
    network_id: str,
    job_id: str,
    inputs: List[List[float]],
    targets: List[List[float]],
    epochs: int
) -> None:
    """
    Background task that trains a network.

    Sends progress updates via WebSocket after every epoch.
    """
    net_info = active_networks[network_id]
    net = net_info['network']

    def on_epoch_complete(data: Dict[str, Any]) -> None:
        progress = (data['epoch'] / data['total_epochs']) * 100

        training_jobs[job_id]['status'] = 'training'
        training_jobs[job_id]['progress'] = progress
        training_jobs[job_id]['loss'] = data['loss']

        socketio.emit('training_update', {
            'job_id': job_id,
            'network_id': network_id,
            'epoch': data['epoch'],
            'total_epochs': data['total_epochs'],
            'loss': data['loss'],
            'elapsed_time': data['elapsed_time'],
            'progress': progress
        })
        gevent.sleep(0)

    def yield_to_other_tasks():
        gevent.sleep(0)

    try:
        logger.info(f"Starting training for job {job_id}")
        training_jobs[job_id]['status'] = 'training'

        history = net.fit(
            inputs,
            targets,
            epochs,
            callback=on_epoch_complete,
            yield_func=yield_to_other_tasks
        )
        loss = history[-1]

        net_info['trained'] = True
        net_info['loss'] = loss

        training_jobs[job_id]['status'] = 'completed'
        training_jobs[job_id]['loss'] = loss
        training_jobs[job_id]['progress'] = 100

        save_network(net, network_id, trained=True, loss=loss)

        logger.info(f"Training completed for job {job_id}: loss {loss:.6f}")

        socketio.emit('training_complete', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'completed',
            'loss': float(loss),
            'progress': 100
        })
        gevent.sleep(0)

    except (InvalidInput, InvalidState, DimensionMismatch) as e:
        logger.error(f"Training failed for job {job_id}: {e}")

        training_jobs[job_id]['status'] = 'failed'
        training_jobs[job_id]['error'] = str(e)

        socketio.emit('training_error', {
            'job_id': job_id,
            'network_id': network_id,
            'status': 'failed',
            'error': str(e)
        })
        gevent.sleep(0)

    finally:
        net_info['training'] = False


@app.route('/api/networks/<network_id>/predict', methods=['POST'])
def predict(network_id: str):
    """
    Feed an input forward through a network.

    Request body:
        {'input': [1, 0]}

    Returns:
        JSON with the network output
    """
    if network_id not in active_networks:
        return error_response('Network not found', 404)

    net_info = active_networks[network_id]
    if net_info.get('training'):
        return error_response('Network is training', 409)

    data = request.get_json(silent=True) or {}
    values = data.get('input')
    if not is_number_list(values):
        return error_response('input must be a list of numbers', 400)

    try:
        output = net_info['network'].feed_forward(values)
    except (InvalidInput, DimensionMismatch) as e:
        return error_response(str(e), 400)
    except InvalidState as e:
        return error_response(str(e), 409)

    return jsonify({
        'network_id': network_id,
        'input': values,
        'output': output
    }), 200


@app.route('/api/training/<job_id>', methods=['GET'])
def get_training_status(job_id: str):
    """Get the current status of a training job."""
    if job_id in training_jobs:
        return jsonify(training_jobs[job_id]), 200

    logger.warning(f"Status requested for non-existent job: {job_id}")
    return error_response('Training job not found', 404)


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all available networks (both in-memory and saved to disk)."""
    in_memory = [
        {
            'network_id': nid,
            'architecture': info['architecture'],
            'trained': info['trained'],
            'loss': info['loss'],
            'status': 'training' if info.get('training') else 'in_memory'
        }
        for nid, info in active_networks.items()
    ]

    in_memory_ids = set(active_networks.keys())
    saved_only = []
    for net in list_saved_networks():
        if net['network_id'] not in in_memory_ids:
            net['status'] = 'saved'
            saved_only.append(net)

    logger.debug(f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved")

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    if active_networks.get(network_id, {}).get('training'):
        return error_response('Network is training', 409)

    deleted_from_memory = active_networks.pop(network_id, None) is not None
    deleted_from_disk = delete_network(network_id)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return error_response('Network not found', 404)

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete every network that is not currently training."""
    in_memory_ids = [
        nid for nid, info in active_networks.items() if not info.get('training')
    ]
    saved_ids = [net['network_id'] for net in list_saved_networks()]
    all_network_ids = sorted(set(in_memory_ids + saved_ids))

    deleted_from_memory_count = 0
    deleted_from_disk_count = 0

    for network_id in all_network_ids:
        if active_networks.get(network_id, {}).get('training'):
            continue
        if active_networks.pop(network_id, None) is not None:
            deleted_from_memory_count += 1
        if delete_network(network_id):
            deleted_from_disk_count += 1

    logger.info(
        f"Deleted all networks: {len(all_network_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk"
    )

    return jsonify({
        'deleted_count': len(all_network_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count,
        'message': f'Successfully deleted {len(all_network_ids)} network(s)'
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Delete saved networks older than the given number of days.

    Request body (optional):
        {'days': 2}
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', 2)

    if not isinstance(days, (int, float)) or isinstance(days, bool) or days < 0:
        return error_response('days must be a non-negative number', 400)

    deleted_count = delete_old_networks(days=int(days))
    if deleted_count == -1:
        return error_response('Error occurred during cleanup', 500)

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")

    return jsonify({
        'deleted_count': deleted_count,
        'days': days,
        'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
    }), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8000))
    logger.info(f"Starting server at http://localhost:{port}/")

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not is_production,
            use_reloader=False,
            allow_unsafe_werkzeug=True
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        raise
