"""Time ``generate`` on the 100x100 overview region."""

from __future__ import annotations

import timeit
from argparse import ArgumentParser

from mandelbrot import EvaluationMode, Region, generate

REGION = Region(img_w=100, img_h=100, real_min=-2.0, real_max=1.0, im_min=-1.5, im_max=1.5)


def main() -> None:
    parser = ArgumentParser()
    parser.add_argument('--iterations', type=int, default=1000)
    parser.add_argument('--repeat', type=int, default=10)
    parser.add_argument('--workers', type=int, default=None)
    parser.add_argument('--style', choices=[m.value for m in EvaluationMode], default=EvaluationMode.SMOOTH.value)
    opt = parser.parse_args()

    def run():
        generate(REGION, opt.iterations, opt.style, lambda: None, workers=opt.workers)

    # First call traces the TensorFlow graph.
    run()
    timings = timeit.repeat(run, number=1, repeat=opt.repeat)
    print(f"generate 100: best {min(timings) * 1e3:.2f} ms, mean {sum(timings) / len(timings) * 1e3:.2f} ms")


if __name__ == "__main__":
    main()
