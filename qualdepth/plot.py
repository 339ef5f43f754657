import matplotlib.pyplot as plt
from matplotlib.ticker import AutoMinorLocator

from qualdepth.sinks import HistogramSink


def plot_coverage(histogram: HistogramSink, output: str, title: str = '', image_type='png'):
    """
    usage: plot the fraction of bases covered at least at each depth

    input: the HistogramSink of one alignment file,
           the output image file,
           the title of the plot,
           the format of the output image: png or pdf

    output: the cumulative coverage plot
    """
    total = histogram.total
    at_least = histogram.cumulative_at_least()
    # the last bucket also holds every deeper base, so stop just before it
    observed = [depth for depth, count in enumerate(histogram.buckets) if count > 0]
    last = min(max(observed) + 1 if observed else 1, histogram.max_depth)
    depths = list(range(last + 1))
    fractions = [at_least[depth] / total if total > 0 else 0 for depth in depths]

    fig, ax = plt.subplots(figsize=(10, 4))
    ax.fill_between(depths, fractions, step='post', color='#2ca25f', alpha=0.4, lw=0)
    ax.step(depths, fractions, where='post', color='#2ca25f', lw=1.2)
    ax.set_xlim(left=0, right=max(last, 1))
    ax.set_ylim(bottom=0, top=1.02)
    ax.xaxis.set_minor_locator(AutoMinorLocator())
    ax.yaxis.set_minor_locator(AutoMinorLocator())

    plt.xlabel('Depth', fontsize=14)
    plt.ylabel('Fraction of bases at least at depth', fontsize=14)
    plt.xticks(fontsize=12)
    plt.yticks(fontsize=12)
    plt.title(f'Cumulative coverage:{title}', fontsize=16, pad=15)
    plt.tight_layout()
    plt.savefig(output, format=image_type, dpi=200)
    plt.close(fig)
