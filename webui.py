# webui.py
# Monitoring API over a running improver/engine pair, plus a
# one-shot move endpoint for boards posted by a client.
import numpy as np
from flask import Flask, jsonify, request

from config import config
from errors import CaptureFailed, InferenceFailed, NoValidMoves, PartnerError, format_error
from stats import EngineStats, GraphData, HistoryStats, ImprovementMetrics, ImproverStats
from data_structures import ReplayStats
from utils import _convert_to_json_serializable

# Anything not listed maps to 500.
ERROR_STATUS = {
    CaptureFailed: 503,
    NoValidMoves: 422,
    InferenceFailed: 500,
}


def _ranked_move_json(move):
    return {
        'notation': move.notation,
        'index': int(move.index),
        'confidence': float(move.confidence),
        'rank': int(move.rank),
        'category': move.category,
        'explanation': move.explanation,
        'tags': list(move.tags),
    }

def _decision_json(decision):
    return {
        'top_move': _ranked_move_json(decision.top_move),
        'alternatives': [_ranked_move_json(m) for m in decision.alternatives],
        'timestamp': decision.timestamp,
        'inference_ms': decision.inference_ms,
        'total_candidates': decision.total_candidates,
    }

def _replay_json(entry):
    return {
        'predicted': entry.predicted_move.notation,
        'actual': entry.actual_move.notation,
        'reward': float(entry.reward),
        'is_correct': bool(entry.is_correct),
        'was_in_top_k': bool(entry.was_in_top_k),
        'top_k_rank': int(entry.top_k_rank),
        'confidence': float(entry.confidence),
        'timestamp': int(entry.timestamp),
        'game_id': entry.game_id,
        'position': int(entry.position),
    }


def create_app(improver=None, engine=None, history=None):
    app = Flask(__name__)

    def _count_arg(default):
        try:
            n = int(request.args.get('n', default))
        except ValueError:
            n = default
        return max(0, n)

    @app.errorhandler(PartnerError)
    def handle_partner_error(e):
        status = next((code for cls, code in ERROR_STATUS.items() if isinstance(e, cls)), 500)
        app.logger.warning(f"{e.code}: {e}")
        return jsonify(format_error(e)), status

    @app.route('/api/config')
    def get_app_config():
        payload = {
            'board_size': config.BOARD_SIZE,
            'action_space_size': config.ACTION_SPACE_SIZE,
            'top_k': engine.top_k if engine is not None else config.TOP_K,
            'confidence_threshold': engine.confidence_threshold if engine is not None else config.CONFIDENCE_THRESHOLD,
            'current_config': config.CURRENT_CONFIG,
        }
        if improver is not None:
            payload['improver'] = improver.config.to_dict()
        return jsonify(payload)

    @app.route('/api/stats')
    def get_stats():
        stats = improver.get_stats() if improver is not None else ImproverStats()
        buffer_stats = improver.get_buffer_stats() if improver is not None else ReplayStats()
        return jsonify(_convert_to_json_serializable({'stats': stats, 'buffer_stats': buffer_stats}))

    @app.route('/api/improvement')
    def get_improvement():
        metrics = improver.calculate_improvement() if improver is not None else ImprovementMetrics()
        graph = improver.graph_data() if improver is not None else GraphData()
        payload = _convert_to_json_serializable({'metrics': metrics, 'graph_data': graph})
        payload['summary'] = str(metrics)
        return jsonify(payload)

    @app.route('/api/engine')
    def get_engine_stats():
        stats = engine.get_statistics() if engine is not None else EngineStats()
        history_stats = history.get_stats() if history is not None else HistoryStats()
        return jsonify(_convert_to_json_serializable({'engine': stats, 'history': history_stats}))

    @app.route('/api/decisions')
    def get_recent_decisions():
        if history is None:
            return jsonify([])
        decisions = history.get_recent(_count_arg(10))
        return jsonify([_decision_json(d) for d in reversed(decisions)])

    @app.route('/api/replays/recent')
    def get_recent_replays():
        if improver is None:
            return jsonify([])
        entries = improver.get_recent_entries(_count_arg(improver.config.EVAL_BATCH_SIZE))
        return jsonify([_replay_json(e) for e in reversed(entries)])

    @app.route('/api/move', methods=['POST'])
    def handle_move():
        if engine is None:
            return jsonify({'error': 'No decision engine attached'}), 503
        data = request.get_json(silent=True) or {}
        if 'board' not in data:
            return jsonify({'error': "Missing 'board'"}), 400
        try:
            board = np.asarray(data['board'], dtype=np.float32)
        except (TypeError, ValueError) as e:
            return jsonify({'error': f"Invalid board: {e}"}), 400
        expected = config.NUM_PIECE_PLANES * config.NUM_SQUARES
        if board.size != expected:
            return jsonify({'error': f"Board must hold {expected} values, got {board.size}"}), 400
        board = board.reshape(config.NUM_PIECE_PLANES, config.BOARD_SIZE, config.BOARD_SIZE)
        decision = engine.decision_with_context(board)
        if history is not None:
            history.add(decision)
        return jsonify(_decision_json(decision))

    return app


if __name__ == '__main__':
    from logger_config import setup_logging
    from decision_engine import DecisionEngine, DecisionHistory
    from model_service import ModelService

    setup_logging(config.LOG_FILE)
    service = ModelService(config)
    app = create_app(engine=DecisionEngine(service), history=DecisionHistory())
    print("\n--- Move Partner WebUI ---")
    print(f"Serving on http://{config.WEBUI_HOST}:{config.WEBUI_PORT}")
    app.run(host=config.WEBUI_HOST, port=config.WEBUI_PORT)
