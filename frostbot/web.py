"""
Web Remote Server - Flask API for monitoring and controlling the queues

Usage:
    app = create_app(manager, state_manager)
    app.run(host='0.0.0.0', port=5000)

Endpoints:
    GET  /api/queues                                 all queue states
    GET  /api/queues/<id>                            one queue with pending tasks
    POST /api/queues/<id>/pause                      pause a queue
    POST /api/queues/<id>/resume                     resume a queue
    POST /api/queues/<id>/tasks/<task_type>/run      run a task now (?replace=1, ?key=...)
    GET  /api/logs/<profile_name>                    recent log records (?limit=50)
    GET  /api/logs/<profile_name>/screenshot         latest logged screenshot (?size=preview)
"""

import base64
import io

from flask import Flask, jsonify, request
from flask_cors import CORS
from PIL import Image

from .utils import log


def _error(message, status):
    return jsonify({
        'success': False,
        'error': message
    }), status


def create_app(manager, state_manager):
    """Build the Flask app

    Args:
        manager: TaskQueueManager
        state_manager: StateManager holding persisted queue state and logs

    Returns:
        Flask
    """
    app = Flask(__name__)
    CORS(app)

    # =============================================================================
    # QUEUES
    # =============================================================================

    @app.route('/api/queues', methods=['GET'])
    def get_queues():
        """Live queue states, plus persisted ones of profiles without a live queue"""
        try:
            queues = manager.get_active_queue_states()
            live_ids = {queue['profile_id'] for queue in queues}
            for state in state_manager.get_all_queue_states():
                if state['profile_id'] not in live_ids:
                    queues.append({
                        'profile_id': state['profile_id'],
                        'profile_name': state['profile_name'],
                        'running': state['is_running'],
                        'paused': state['paused'],
                        'needs_reconnect': state['needs_reconnect'],
                        'reconnect_at': state['reconnect_at'],
                        'current_task': state['current_task'] or None,
                    })
            queues.sort(key=lambda queue: queue['profile_name'].lower())
            return jsonify({
                'success': True,
                'queues': queues
            })
        except Exception as e:
            return _error(str(e), 500)

    @app.route('/api/queues/<int:profile_id>', methods=['GET'])
    def get_queue(profile_id):
        queue = next((q for q in manager.queues() if q.profile_id == profile_id), None)
        if queue is None:
            return _error('Queue not found', 404)

        status = queue.get_status()
        status['tasks'] = state_manager.get_task_states(profile_id)
        return jsonify({
            'success': True,
            'queue': status
        })

    @app.route('/api/queues/<int:profile_id>/pause', methods=['POST'])
    def pause_queue(profile_id):
        if not manager.pause_queue(profile_id):
            return _error('Queue not found', 404)
        return jsonify({'success': True})

    @app.route('/api/queues/<int:profile_id>/resume', methods=['POST'])
    def resume_queue(profile_id):
        if not manager.resume_queue(profile_id):
            return _error('Queue not found', 404)
        return jsonify({'success': True})

    @app.route('/api/queues/<int:profile_id>/tasks/<task_type>/run', methods=['POST'])
    def run_task(profile_id, task_type):
        """Queue a task to run now

        Query params:
            replace: '1' to replace an equal pending task
            key: distinct key for multi-instance tasks
        """
        replace = request.args.get('replace', '0').lower() in ('1', 'true', 'yes')
        distinct_key = request.args.get('key')
        try:
            task = manager.execute_task_now(task_type, profile_id,
                                            replace_existing=replace, distinct_key=distinct_key)
        except KeyError:
            return _error('Profile not found', 404)
        except ValueError as e:
            return _error(str(e), 400)

        if task is None:
            return jsonify({
                'success': True,
                'queued': False,
                'message': 'Task already pending'
            })

        log(f"Run requested via web API (replace={replace})", task=task.name, profile=task.profile.name)
        return jsonify({
            'success': True,
            'queued': True,
            'task': task.name,
            'scheduled_time': task.scheduled_time.isoformat(timespec='seconds')
        })

    # =============================================================================
    # LOGS
    # =============================================================================

    @app.route('/api/logs/<profile_name>', methods=['GET'])
    def get_logs(profile_name):
        try:
            limit = int(request.args.get('limit', 50))
        except ValueError:
            return _error('limit must be an integer', 400)

        return jsonify({
            'success': True,
            'logs': state_manager.get_logs(profile=profile_name, limit=limit)
        })

    @app.route('/api/logs/<profile_name>/screenshot', methods=['GET'])
    def get_screenshot(profile_name):
        """Latest logged screenshot as a base64 JPEG data URL

        Query params:
            size: 'preview' for a small thumbnail (85x150), 'full' (default)
        """
        blob = state_manager.get_latest_screenshot(profile_name)
        if blob is None:
            return _error('No screenshot available', 404)

        img = Image.open(io.BytesIO(blob))
        original_width, original_height = img.size

        quality = 85
        if request.args.get('size', 'full') == 'preview':
            img = img.resize((85, 150), Image.Resampling.LANCZOS)
            quality = 60

        buffer = io.BytesIO()
        img.convert('RGB').save(buffer, format='JPEG', quality=quality, optimize=True)
        base64_data = base64.b64encode(buffer.getvalue()).decode('utf-8')

        return jsonify({
            'success': True,
            'screenshot': f'data:image/jpeg;base64,{base64_data}',
            'width': original_width,
            'height': original_height
        })

    return app
