"""
Visualization tools for simulation results using Plotly.

Draws the underlay with its peer edges and in-flight messages, block trees
and propagation charts.
"""

from typing import Dict, List, Optional
import plotly.graph_objects as go
import plotly.express as px
from plotly.subplots import make_subplots
import numpy as np

from .nakamoto import GENESIS, NakamotoNodeState, short_id, to_number
from .simulation import Simulation
from .statistics import MetricsCollector
from .underlay import UnderlayPosition
from .view import EdgeMap, EdgeType, blocks_cutout, message_position
from .world import Entity


BLOCK_PALETTE = px.colors.qualitative.Plotly


def block_color(block_id: bytes) -> str:
    """Stable color of a block, grey for genesis."""
    if block_id == GENESIS:
        return '#95a5a6'
    return BLOCK_PALETTE[to_number(block_id) % len(BLOCK_PALETTE)]


def _save(fig: go.Figure, output_file: Optional[str], width: int, height: int, label: str):
    if output_file.endswith('.html'):
        fig.write_html(output_file)
    else:
        fig.write_image(output_file, width=width, height=height)
    print(f"Saved {label} to {output_file}")


class Visualizer:
    """
    Visualization generator for simulation results using Plotly.

    Creates interactive charts and network snapshots.
    """

    def __init__(self, collector: MetricsCollector):
        self.collector = collector
        self.edge_styles = {
            EdgeType.UNDIRECTED: dict(width=1.5, color='#7f8c8d', dash='solid'),
            EdgeType.LEFT_RIGHT: dict(width=1, color='#7f8c8d', dash='dash'),
            EdgeType.RIGHT_LEFT: dict(width=1, color='#7f8c8d', dash='dash'),
            EdgeType.PHANTOM: dict(width=0.5, color='#d5dbdb', dash='dot'),
        }

    def plot_propagation_latency(self, output_file: Optional[str] = None, show: bool = False):
        """
        Plot block propagation latency distribution.

        Args:
            output_file: Optional filename to save plot (HTML or PNG)
            show: Whether to display the plot in browser
        """
        latencies = []
        for block_metrics in self.collector.block_metrics.values():
            latencies.extend(block_metrics.arrival_times.values())

        if not latencies:
            print("No latency data to plot")
            return

        fig = make_subplots(
            rows=1, cols=2,
            subplot_titles=('Propagation Latency Distribution', 'Cumulative Distribution Function'),
            specs=[[{'type': 'histogram'}, {'type': 'scatter'}]]
        )

        fig.add_trace(
            go.Histogram(
                x=latencies,
                nbinsx=50,
                name='Latency',
                marker_color='#3498db',
                opacity=0.7,
                hovertemplate='Latency: %{x:.3f} s<br>Count: %{y}<extra></extra>'
            ),
            row=1, col=1
        )

        median = np.median(latencies)
        p95 = np.percentile(latencies, 95)

        fig.add_vline(
            x=median, line_dash="dash", line_color="red",
            annotation_text=f"Median: {median:.3f} s",
            row=1, col=1
        )
        fig.add_vline(
            x=p95, line_dash="dash", line_color="orange",
            annotation_text=f"P95: {p95:.3f} s",
            row=1, col=1
        )

        sorted_latencies = np.sort(latencies)
        cdf = np.arange(1, len(sorted_latencies) + 1) / len(sorted_latencies)

        fig.add_trace(
            go.Scatter(
                x=sorted_latencies,
                y=cdf,
                mode='lines',
                name='CDF',
                line=dict(color='#2ecc71', width=2),
                hovertemplate='Latency: %{x:.3f} s<br>CDF: %{y:.3f}<extra></extra>'
            ),
            row=1, col=2
        )

        fig.update_xaxes(title_text="Propagation Latency (s)", row=1, col=1)
        fig.update_yaxes(title_text="Frequency", row=1, col=1)
        fig.update_xaxes(title_text="Propagation Latency (s)", row=1, col=2)
        fig.update_yaxes(title_text="CDF", row=1, col=2)

        fig.update_layout(
            title_text="Block Propagation Latency Analysis",
            showlegend=True,
            height=500,
            width=1400,
            template='plotly_white'
        )

        if output_file:
            _save(fig, output_file, 1400, 500, "propagation latency plot")

        if show:
            fig.show()

        return fig

    def plot_tip_heights(self, output_file: Optional[str] = None, show: bool = False):
        """
        Plot the tip height of every node, colored by its tip block.

        Nodes sharing a color agree on the best chain.
        """
        nodes = sorted(self.collector.node_metrics.values(), key=lambda nm: nm.node)
        if not nodes:
            print("No node data to plot")
            return

        colors = []
        for nm in nodes:
            colors.append(BLOCK_PALETTE[int(nm.tip, 16) % len(BLOCK_PALETTE)] if nm.tip_height else '#95a5a6')

        fig = go.Figure()

        fig.add_trace(go.Bar(
            x=[nm.name for nm in nodes],
            y=[nm.tip_height for nm in nodes],
            marker_color=colors,
            customdata=[[nm.tip, nm.fork_tips] for nm in nodes],
            hovertemplate='%{x}<br>Height: %{y}<br>Tip: %{customdata[0]}<br>Fork tips: %{customdata[1]}<extra></extra>'
        ))

        fig.update_layout(
            title='Tip Height by Node',
            xaxis_title='Node',
            yaxis_title='Tip Height',
            template='plotly_white',
            height=600,
            width=1200,
            showlegend=False
        )

        if output_file:
            _save(fig, output_file, 1200, 600, "tip height plot")

        if show:
            fig.show()

        return fig

    def plot_network_snapshot(
        self,
        sim: Simulation,
        edge_map: Optional[EdgeMap] = None,
        output_file: Optional[str] = None,
        show: bool = False
    ):
        """
        Draw the underlay at the current virtual time.

        Nodes sit at their underlay positions and are colored by their tip
        block. Mutual peer edges are solid, one-directional edges dashed and
        phantom edges dotted. In-flight messages are drawn at their
        interpolated positions.

        Args:
            sim: Simulation to draw
            edge_map: Edge cache to reuse between snapshots
            output_file: Optional filename to save plot
            show: Whether to display the plot in browser
        """
        if edge_map is None:
            edge_map = EdgeMap.build(sim.world, sim.now)
        else:
            edge_map.rebuild_if_needed(sim.world, sim.now)

        fig = go.Figure()

        for edge_type, style in self.edge_styles.items():
            edge_x = []
            edge_y = []
            for current_type, line in edge_map.edges.values():
                if current_type != edge_type:
                    continue
                edge_x.extend([line.start.x, line.end.x, None])
                edge_y.extend([line.start.y, line.end.y, None])
            if edge_x:
                fig.add_trace(go.Scatter(
                    x=edge_x,
                    y=edge_y,
                    mode='lines',
                    name=edge_type.value,
                    line=style,
                    hoverinfo='none'
                ))

        node_x = []
        node_y = []
        node_colors = []
        node_text = []
        for node in sim.all_nodes():
            position = sim.world.get(node, UnderlayPosition)
            state = sim.world.get(node, NakamotoNodeState) or NakamotoNodeState()
            node_x.append(position.x)
            node_y.append(position.y)
            node_colors.append(block_color(state.tip))
            node_text.append(f'{sim.name(node)}<br>Tip: {short_id(state.tip)} (height {state.tip_height})')

        fig.add_trace(go.Scatter(
            x=node_x,
            y=node_y,
            mode='markers',
            name='nodes',
            marker=dict(
                color=node_colors,
                size=14,
                line_width=1,
                line_color='white'
            ),
            text=node_text,
            hoverinfo='text'
        ))

        message_x = []
        message_y = []
        message_text = []
        for message, envelope, line, span in sim.messages_in_flight():
            position = message_position(line, span, sim.now)
            message_x.append(position.x)
            message_y.append(position.y)
            message_text.append(f'{sim.name(envelope.source)} -> {sim.name(envelope.dest)}')

        if message_x:
            fig.add_trace(go.Scatter(
                x=message_x,
                y=message_y,
                mode='markers',
                name='messages',
                marker=dict(color='#e74c3c', size=6, symbol='diamond'),
                text=message_text,
                hoverinfo='text'
            ))

        fig.update_layout(
            title=f'Network at t = {sim.now:.2f} s',
            hovermode='closest',
            xaxis=dict(range=[0, sim.underlay_width], showgrid=False, zeroline=False),
            yaxis=dict(range=[sim.underlay_height, 0], showgrid=False, zeroline=False),
            template='plotly_white',
            height=sim.underlay_height + 100,
            width=sim.underlay_width + 100
        )

        if output_file:
            _save(fig, output_file, int(sim.underlay_width) + 100, int(sim.underlay_height) + 100, "network snapshot")

        if show:
            fig.show()

        return fig

    def plot_block_tree(
        self,
        sim: Simulation,
        node: Entity,
        max_depth: int = 5,
        output_file: Optional[str] = None,
        show: bool = False
    ):
        """
        Draw the top of one node's block tree: the best chain in the first
        column, recent forks to its right.
        """
        state = sim.world.get(node, NakamotoNodeState) or NakamotoNodeState()
        columns = blocks_cutout(state, max_depth)

        block_x: List[int] = []
        block_y: List[int] = []
        colors: List[str] = []
        labels: List[str] = []
        positions: Dict[bytes, tuple] = {}
        for col, column in enumerate(columns):
            for row, block_id in enumerate(column):
                if block_id is None:
                    continue
                positions.setdefault(block_id, (col, row))
                block_x.append(col)
                block_y.append(row)
                colors.append(block_color(block_id))
                labels.append(short_id(block_id))

        link_x = []
        link_y = []
        for block_id, (col, row) in positions.items():
            prev = positions.get(state.hash_prev(block_id))
            if prev is not None:
                link_x.extend([col, prev[0], None])
                link_y.extend([row, prev[1], None])

        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=link_x,
            y=link_y,
            mode='lines',
            line=dict(width=1, color='#888'),
            hoverinfo='none'
        ))
        fig.add_trace(go.Scatter(
            x=block_x,
            y=block_y,
            mode='markers+text',
            marker=dict(color=colors, size=30, symbol='square'),
            text=labels,
            textposition='middle right',
            hoverinfo='text'
        ))

        fig.update_layout(
            title=f'Blocks of {sim.name(node)} (tip height {state.tip_height})',
            showlegend=False,
            xaxis=dict(showgrid=False, zeroline=False, showticklabels=False),
            yaxis=dict(autorange='reversed', showgrid=False, zeroline=False, showticklabels=False),
            template='plotly_white',
            height=100 * max_depth + 100,
            width=200 * max(len(columns), 2)
        )

        if output_file:
            _save(fig, output_file, 200 * max(len(columns), 2), 100 * max_depth + 100, "block tree")

        if show:
            fig.show()

        return fig

    def generate_all_plots(self, output_dir: str = "plots", format: str = "html"):
        """
        Generate all standard plots.

        Args:
            output_dir: Directory to save plots
            format: Output format ('html' for interactive, 'png' for static)
        """
        import os
        os.makedirs(output_dir, exist_ok=True)

        print("Generating visualization plots with Plotly...")

        extension = '.html' if format == 'html' else '.png'

        self.plot_propagation_latency(
            output_file=os.path.join(output_dir, f"propagation_latency{extension}")
        )

        self.plot_tip_heights(
            output_file=os.path.join(output_dir, f"tip_heights{extension}")
        )

        print(f"All plots saved to {output_dir}/ in {format.upper()} format")
