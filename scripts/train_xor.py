#!/usr/bin/env python3
"""
Train a small network on XOR.

Builds a [2, 3, 1] sigmoid network with learning rate 0.1, trains it until
the average loss drops below a threshold (or the round limit is hit), and
prints the predictions for the four XOR inputs.

Usage:
    python scripts/train_xor.py [--seed 7] [--train-all-layers] [--save xor]
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..'))

from triton_grow import Activations, Mode, Network  # noqa: E402
from triton_grow.model_persistence import save_network  # noqa: E402

XOR_INPUTS = [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]]
XOR_TARGETS = [[0.0], [1.0], [1.0], [0.0]]


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('--seed', type=int, default=None,
                        help='seed for weight initialization')
    parser.add_argument('--learning-rate', type=float, default=0.1)
    parser.add_argument('--loss', type=float, default=0.005,
                        help='stop once the average loss is at or below this')
    parser.add_argument('--steps', type=int, default=1000,
                        help='passes over the dataset between loss checks')
    parser.add_argument('--max-rounds', type=int, default=100)
    parser.add_argument('--train-all-layers', action='store_true',
                        help='also update the first layer during back propagation')
    parser.add_argument('--save', metavar='NETWORK_ID', default=None,
                        help='save the trained network under this id')
    return parser.parse_args(argv)


def main(argv=None):
    """Train on XOR and report the predictions."""
    args = parse_args(argv)
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print("=" * 60)
    print("XOR training")
    print("=" * 60)

    net = Network.from_topology(
        [2, 3, 1],
        Activations.SIGMOID,
        args.learning_rate,
        train_all_layers=args.train_all_layers,
        seed=args.seed
    )

    net = net.train_to_loss(
        XOR_INPUTS,
        XOR_TARGETS,
        args.loss,
        args.steps,
        mode=Mode.AVG,
        max_rounds=args.max_rounds
    )
    loss = net.evaluate_loss(XOR_INPUTS, XOR_TARGETS)

    print(f"\nFinal average loss: {loss:.6f}")
    for sample, target in zip(XOR_INPUTS, XOR_TARGETS):
        output = net.feed_forward(sample)
        print(f"   {sample} -> {output[0]:.4f} (expected {target[0]:.0f})")

    if args.save:
        if save_network(net, args.save, trained=True, loss=loss):
            print(f"\nSaved network as '{args.save}'")
        else:
            print(f"\nCould not save network '{args.save}'")
            sys.exit(1)


if __name__ == '__main__':
    main()
