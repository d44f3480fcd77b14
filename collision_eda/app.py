from flask import Flask, jsonify, Response
from flask_compress import Compress
import json
import logging
from typing import Optional, Tuple, Union

import pandas as pd
from shapely.geometry import mapping

from .aggregate import group_count
from .config import Settings, load_settings
from .pipeline import CollisionAnalysis, run_pipeline
from .report import build_report_html

logger = logging.getLogger(__name__)

app = Flask(__name__)
Compress(app)  # gzip/brotli for the large GeoJSON and report responses

COUNT_COLUMNS = {
    'borough': 'BOROUGH',
    'zip': 'ZIP_CODE',
    'hour': 'hour',
    'factor': 'factor1',
}

# Loaded on first request (or injected with set_analysis)
_analysis: Optional[CollisionAnalysis] = None
_report_html: Optional[str] = None
_settings: Optional[Settings] = None


def set_analysis(analysis: Optional[CollisionAnalysis]) -> None:
    global _analysis, _report_html
    _analysis = analysis
    _report_html = None


def configure(settings: Settings) -> None:
    global _settings
    _settings = settings


def get_analysis() -> CollisionAnalysis:
    """Lazy-load the analysis (only runs the pipeline once per process)"""
    global _analysis
    if _analysis is None:
        settings = _settings or load_settings()
        logger.info("Running collision analysis (lazy-load)...")
        _analysis = run_pipeline(settings)
    return _analysis


def _records(df: pd.DataFrame) -> list:
    return json.loads(df.to_json(orient='records'))


def _clean(obj):
    """NaN -> None and numpy scalars -> Python, so the output is valid JSON"""
    if isinstance(obj, dict):
        return {str(k): _clean(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_clean(v) for v in obj]
    if hasattr(obj, "item"):
        obj = obj.item()
    if isinstance(obj, float) and obj != obj:
        return None
    return obj


def _table_json(table: pd.DataFrame) -> dict:
    return {
        'rows': [str(r) for r in table.index],
        'columns': [str(c) for c in table.columns],
        'counts': table.values.tolist(),
        'row_name': table.index.name,
        'column_name': table.columns.name,
    }


@app.route('/')  # type: ignore
def index() -> Response:
    """Serve the full HTML report"""
    global _report_html
    if _report_html is None:
        _report_html = build_report_html(get_analysis())
    return Response(_report_html, mimetype='text/html')


@app.route('/api/summary')  # type: ignore
def get_summary() -> Response:
    analysis = get_analysis()
    df = analysis.df
    return jsonify({
        'total_records': len(df),
        'deaths': analysis.n_deaths,
        'persons_killed': int(df['nkilled'].sum()),
        'date_range': f"{df['CRASH_DATE'].min():%m/%d/%Y}-{df['CRASH_DATE'].max():%m/%d/%Y}",
        'rare_threshold': analysis.threshold,
        'notes': analysis.notes,
    })


@app.route('/api/counts/<key>')  # type: ignore
def get_counts(key: str) -> Union[Response, Tuple[Response, int]]:
    """Crash counts grouped by borough, zip, hour or factor"""
    if key not in COUNT_COLUMNS:
        return jsonify({'error': f"Unknown grouping '{key}' (expected one of {sorted(COUNT_COLUMNS)})"}), 400
    analysis = get_analysis()
    if key == 'zip':
        counts = analysis.zip_counts
    elif key == 'hour':
        counts = analysis.hour_counts
    else:
        counts = group_count(analysis.df, COUNT_COLUMNS[key])
    return jsonify(_records(counts))


@app.route('/api/killed-check')  # type: ignore
def get_killed_check() -> Response:
    check = get_analysis().killed_check
    return jsonify({
        'n_records': check.n_records,
        'n_matching': check.n_matching,
        'percent': check.percent,
        'summary': check.summary(),
        'mismatches': _records(check.mismatches.reset_index()),
    })


@app.route('/api/association/<name>')  # type: ignore
def get_association(name: str) -> Union[Response, Tuple[Response, int]]:
    """Cross table and chi-squared test for one of the two analysed pairs"""
    analysis = get_analysis()
    pairs = {
        'factor-killed': (analysis.factor_table, analysis.factor_test),
        'death-borough': (analysis.death_table, analysis.death_test),
    }
    if name not in pairs:
        return jsonify({'error': 'Unknown association'}), 404
    table, test = pairs[name]
    return jsonify({'table': _table_json(table), 'test': _clean(test.to_dict())})


@app.route('/api/models')  # type: ignore
def get_models() -> Response:
    models = get_analysis().models
    return jsonify({name: _clean(fit.to_dict()) for name, fit in models.items()})


@app.route('/api/zips')  # type: ignore
def get_zips() -> Union[Response, Tuple[Response, int]]:
    """Zip aggregate (count, median income, geometry) as GeoJSON"""
    zips = get_analysis().zip_aggregate
    if zips is None:
        return jsonify({'error': 'Zip code census/geometry data not available'}), 404
    return Response(zips.to_json(), mimetype='application/geo+json')


@app.route('/api/boroughs')  # type: ignore
def get_boroughs() -> Union[Response, Tuple[Response, int]]:
    boroughs = get_analysis().boroughs
    if not boroughs:
        return jsonify({'error': 'Borough boundaries not available'}), 404
    return jsonify({
        'type': 'FeatureCollection',
        'features': [
            {'type': 'Feature', 'properties': {'boro_name': name}, 'geometry': mapping(geom)}
            for name, geom in boroughs.items()
        ],
    })
