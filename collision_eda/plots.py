"""Plotly figures for the collision analysis."""

import json
from typing import Dict, Optional

import geopandas as gpd
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from shapely.geometry.base import BaseGeometry

from .aggregate import hourly_counts
from .features import valid_locations


def hour_histogram(df: pd.DataFrame) -> go.Figure:
    counts = hourly_counts(df)
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=counts["hour"].tolist(),
        y=counts["count"].tolist(),
        marker_color='#1f77b4',
        hovertemplate='<b>Hour %{x}</b><br>Crashes: %{y}<extra></extra>'
    ))
    fig.update_layout(
        title="Crashes by Hour of Day",
        xaxis_title="Hour of Day",
        yaxis_title="Count",
        xaxis=dict(tickmode='linear', tick0=0, dtick=4, range=[-0.5, 23.5]),
        yaxis=dict(rangemode='tozero'),
        bargap=0.05,
        height=450,
        template='plotly_white',
        showlegend=False
    )
    return fig


def borough_bar(borough_counts: pd.DataFrame) -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=borough_counts.iloc[:, 0].astype(str).tolist(),
        y=borough_counts["count"].tolist(),
        marker_color='steelblue',
        text=borough_counts["count"].tolist(),
        textposition='outside',
        hovertemplate='<b>%{x}</b><br>Crashes: %{y}<extra></extra>'
    ))
    fig.update_layout(
        title="Crashes by Borough",
        xaxis_title="Borough",
        yaxis_title="Count",
        height=450,
        template='plotly_white',
        showlegend=False
    )
    return fig


def _outline_traces(boroughs: Dict[str, BaseGeometry]) -> list:
    traces = []
    for name, geom in boroughs.items():
        polygons = getattr(geom, "geoms", [geom])
        xs, ys = [], []
        for poly in polygons:
            x, y = poly.exterior.xy
            xs += list(x) + [None]
            ys += list(y) + [None]
        traces.append(go.Scatter(
            x=xs, y=ys, mode='lines', name=name,
            line=dict(color='gray', width=1), opacity=0.5,
            hoverinfo='skip', showlegend=False
        ))
    return traces


def _crash_points(df: pd.DataFrame, hour: Optional[int] = None) -> go.Scatter:
    subset = valid_locations(df)
    if hour is not None:
        subset = subset[subset["hour"] == hour]
    return go.Scatter(
        x=subset["LONGITUDE"].tolist(),
        y=subset["LATITUDE"].tolist(),
        mode='markers',
        marker=dict(size=4, color='#d62728', opacity=0.7),
        name='Crashes',
        hovertemplate='Lon %{x:.4f}<br>Lat %{y:.4f}<extra></extra>',
        showlegend=False
    )


def _map_layout(fig: go.Figure, title: str) -> None:
    fig.update_layout(
        title=title,
        xaxis_title="Longitude",
        yaxis_title="Latitude",
        yaxis=dict(scaleanchor='x', scaleratio=1.3),
        height=650,
        template='plotly_white'
    )


def crash_map(df: pd.DataFrame, boroughs: Optional[Dict[str, BaseGeometry]] = None,
              hour: Optional[int] = None) -> go.Figure:
    """Crash positions over borough outlines, optionally for one hour of day."""
    fig = go.Figure(data=_outline_traces(boroughs or {}) + [_crash_points(df, hour)])
    title = "Crashes" if hour is None else f"Crashes in hour {hour}"
    _map_layout(fig, title)
    return fig


def crash_animation(df: pd.DataFrame, boroughs: Optional[Dict[str, BaseGeometry]] = None) -> go.Figure:
    """One frame per hour of day; the outlines stay fixed and the crash trace changes."""
    outlines = _outline_traces(boroughs or {})
    crash_index = len(outlines)

    frames = [
        go.Frame(data=[_crash_points(df, h)], traces=[crash_index], name=str(h),
                 layout=go.Layout(title=f"Crashes in hour {h}"))
        for h in range(24)
    ]
    fig = go.Figure(data=outlines + [_crash_points(df, 0)], frames=frames)
    _map_layout(fig, "Crashes in hour 0")

    fig.update_layout(
        updatemenus=[dict(
            type='buttons', showactive=False, x=0.05, y=-0.05,
            buttons=[
                dict(label='Play', method='animate',
                     args=[None, dict(frame=dict(duration=1000, redraw=True), fromcurrent=True)]),
                dict(label='Pause', method='animate',
                     args=[[None], dict(frame=dict(duration=0, redraw=False), mode='immediate')]),
            ]
        )],
        sliders=[dict(
            active=0,
            currentvalue=dict(prefix='Hour: '),
            steps=[dict(label=str(h), method='animate',
                        args=[[str(h)], dict(mode='immediate', frame=dict(duration=0, redraw=True))])
                   for h in range(24)]
        )]
    )
    return fig


def zip_choropleth(zip_gdf: gpd.GeoDataFrame) -> go.Figure:
    """Crash count per zip code as a choropleth."""
    gdf = zip_gdf.copy()
    gdf["ZIP_CODE"] = gdf["ZIP_CODE"].astype(str)
    geojson = json.loads(gdf[["ZIP_CODE", "geometry"]].to_json())

    fig = px.choropleth(
        gdf,
        geojson=geojson,
        locations="ZIP_CODE",
        featureidkey="properties.ZIP_CODE",
        color="count",
        color_continuous_scale="Viridis",
        hover_data={"ZIP_CODE": True, "count": True, "MEDIAN_INCOME": ':,.0f'},
        labels={"ZIP_CODE": "Zip Code", "count": "Crash count", "MEDIAN_INCOME": "Median income"},
    )
    fig.update_geos(fitbounds="locations", visible=False)
    fig.update_traces(marker_line_color='white', marker_line_width=0.5)
    fig.update_layout(
        title="N Crashes by Zip Code",
        height=650,
        template='plotly_white',
        margin=dict(l=0, r=0, t=50, b=0)
    )
    return fig
