"""
Interactive HTML report for the NYC collision analysis.

Sections follow the analysis: crashes by borough, crashes by hour, the
persons-killed check, contributing factor vs persons killed, death vs
borough, the crash map animation, the logistic models and the zip code
choropleth.
"""

from datetime import datetime
from html import escape
from pathlib import Path
from typing import Optional

import pandas as pd

from .contingency import ChisqResult
from .model import LogitFit
from .pipeline import CollisionAnalysis
from . import plots

PLOTLY_CDN = "https://cdn.plot.ly/plotly-2.27.0.min.js"

STYLE = """
<style>
body {
    font-family: 'Space Grotesk', -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
    margin: 0;
    background: #f5f7fa;
    color: #333;
}
.container { max-width: 1200px; margin: 0 auto; padding: 30px; }
header { background: #155e75; color: #67e8f9; padding: 30px; border-radius: 8px; }
header h1 { margin: 0 0 8px 0; color: white; }
.section {
    background: white;
    border-radius: 8px;
    padding: 24px;
    margin-top: 24px;
    box-shadow: 0 2px 4px rgba(0,0,0,0.08);
}
.section h2 { margin-top: 0; color: #155e75; }
.finding-box { padding: 14px 18px; border-left: 4px solid #007bff; background: #f0f7ff; border-radius: 5px; }
.finding-box.warning { border-left-color: #f0ad4e; background: #fff8ec; }
table.data-table { border-collapse: collapse; width: 100%; font-size: 13px; }
table.data-table th { background: steelblue; color: white; padding: 8px 10px; text-align: left; }
table.data-table td { padding: 6px 10px; border-bottom: 1px solid #e0e0e0; }
table.data-table tbody tr:nth-child(odd) { background-color: #f9f9f9; }
.note { color: #777; font-size: 13px; }
</style>
"""


def _table_html(df: pd.DataFrame, index: bool = True, float_format: str = "{:,.4f}") -> str:
    return df.to_html(classes="data-table", index=index, border=0,
                      float_format=lambda x: float_format.format(x))


def _fig_html(fig) -> str:
    return fig.to_html(full_html=False, include_plotlyjs=False)


def _test_html(title: str, result: ChisqResult) -> str:
    verdict = ("Evidence of association at the 5% level" if result.significant
               else "No evidence of association at the 5% level")
    return f"""
    <div class="finding-box">
        <h4>{escape(title)}</h4>
        <ul>
            <li>Test statistic: {result.statistic:.4f}</li>
            <li>DoF: {result.dof}</li>
            <li>N: {result.n:,}</li>
            <li>P-value: {result.p_value:.6g}</li>
            <li>Cram&eacute;r's V: {result.cramers_v:.4f}</li>
        </ul>
        <p><strong>{verdict}.</strong> <span class="note">(method: {result.method})</span></p>
    </div>
    """


def _model_html(name: str, fit: LogitFit) -> str:
    status = "converged" if fit.converged else f"did NOT converge: {escape(fit.message)}"
    return f"""
    <h3>{escape(name)}</h3>
    <p>n = {fit.n_obs:,}, deviance = {fit.deviance:.3f} (null {fit.null_deviance:.3f}),
       AIC = {fit.aic:.3f}, {status}</p>
    {_table_html(fit.table())}
    """


def build_report_html(analysis: CollisionAnalysis, generated: Optional[datetime] = None) -> str:
    generated = generated or datetime.now()
    check = analysis.killed_check

    borough_html = _fig_html(plots.borough_bar(analysis.borough_counts))
    hour_html = _fig_html(plots.hour_histogram(analysis.df))
    animation_html = _fig_html(plots.crash_animation(analysis.df, analysis.boroughs))

    if check.n_mismatching:
        mismatch_html = f"""
        <div class="finding-box warning">
            <h4>Rows that don't have a matching sum</h4>
            {_table_html(check.mismatches)}
        </div>"""
    else:
        mismatch_html = ""

    models_html = "".join(_model_html(name, fit) for name, fit in analysis.models.items())

    if analysis.zip_aggregate is not None and len(analysis.zip_aggregate):
        zip_table = pd.DataFrame(analysis.zip_aggregate.drop(columns="geometry"))
        zip_html = _fig_html(plots.zip_choropleth(analysis.zip_aggregate)) + _table_html(zip_table, index=False)
    else:
        zip_html = '<p class="note">Zip code census/geometry data not available.</p>'

    notes_html = "".join(f"<li>{escape(n)}</li>" for n in analysis.notes)
    notes_html = f'<ul class="note">{notes_html}</ul>' if notes_html else ""

    return f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>NYC Motor Vehicle Collisions - January 2022</title>
    <script src="{PLOTLY_CDN}"></script>
    {STYLE}
</head>
<body>
<div class="container">
    <header>
        <h1>NYC Motor Vehicle Collisions</h1>
        <p>{len(analysis.df):,} crashes, {analysis.n_deaths} with at least one death.
           Generated {generated.strftime('%Y-%m-%d %H:%M')}.</p>
        {notes_html}
    </header>

    <div class="section">
        <h2>Crashes by Borough</h2>
        {borough_html}
        {_table_html(analysis.borough_counts, index=False)}
    </div>

    <div class="section">
        <h2>Crashes by Hour of Day</h2>
        {hour_html}
    </div>

    <div class="section">
        <h2>Persons Killed</h2>
        <p>NUMBER_OF_PERSONS_KILLED is compared with pedestrians + cyclists + motorists killed;
           the sum is used from here on.</p>
        <h4>{escape(check.summary())}</h4>
        {mismatch_html}
    </div>

    <div class="section">
        <h2>Contributing Factor (vehicle 1) vs Persons Killed</h2>
        <p>Factors with fewer than {analysis.threshold} crashes are collapsed into "Other".</p>
        {_table_html(analysis.factor_table)}
        {_test_html("Test for association between factor1 and nkilled", analysis.factor_test)}
    </div>

    <div class="section">
        <h2>Death vs Borough</h2>
        <p>Missing boroughs are kept as their own group.</p>
        {_table_html(analysis.death_table)}
        {_test_html("Test for association between death and borough", analysis.death_test)}
    </div>

    <div class="section">
        <h2>Crashes by Location and Hour</h2>
        {animation_html}
    </div>

    <div class="section">
        <h2>Logistic Models for Death</h2>
        <p class="note">There are only {analysis.n_deaths} deaths among {len(analysis.df):,} crashes.</p>
        {models_html}
    </div>

    <div class="section">
        <h2>Crashes by Zip Code</h2>
        {zip_html}
    </div>
</div>
</body>
</html>
"""


def write_report(analysis: CollisionAnalysis, results_dir: Path) -> Path:
    results_dir = Path(results_dir)
    results_dir.mkdir(parents=True, exist_ok=True)
    output_file = results_dir / f"collision_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.html"
    with open(output_file, 'w') as f:
        f.write(build_report_html(analysis))
    return output_file


def latest_report(results_dir: Path) -> Optional[Path]:
    reports = sorted(Path(results_dir).glob("collision_report_*.html"), key=lambda p: p.stat().st_mtime)
    return reports[-1] if reports else None
