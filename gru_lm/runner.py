#!/usr/bin/env python3
"""
Runner Script for GRU Language Model Training and Prediction
============================================================

This script provides a unified interface for:
1. Training the GRU model on a single sentence
2. Completing test prefixes with the trained model
3. Inspecting the merged configuration

Usage:
    # Train on the default sentence and complete the default prefixes
    python -m gru_lm.runner train

    # Override hyperparameters
    python -m gru_lm.runner train --epochs 200 --learning-rate 0.02 --hidden-size 16

    # Custom text and prefixes
    python -m gru_lm.runner train --text "a b a b" --vocab-size 4 --prefix "a" --prefix "b"

    # Show config
    python -m gru_lm.runner show-config

Notes:
    - Configuration is read from `config/trainer/base_config.yaml` and
      `config/trainer/gru_config.yaml` when present, merged over the package
      defaults, then overridden by command line arguments.
    - Trained parameters are not saved; every run trains from scratch.
"""

import argparse
import copy
import logging
import os
import sys
from typing import Any, Dict, Optional

import yaml

from gru_lm.models.gru import config as model_defaults
from gru_lm.sampler.config import DEFAULT_PREDICTION_CONFIG, TEST_PREFIXES
from gru_lm.trainer.config import DATA_CONFIG, TRAINING_CONFIG

# Setup basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def default_config() -> Dict[str, Any]:
    """Package defaults in the same layout as the YAML files."""
    return {
        'model': {
            'vocab_size': DATA_CONFIG['vocab_size'],
            'embedding_dim': model_defaults.embedding_dim,
            'hidden_dim': model_defaults.hidden_dim,
            'seed': model_defaults.seed,
        },
        'training': copy.deepcopy(TRAINING_CONFIG),
        'data': {'text': DATA_CONFIG['text']},
        'prediction': {
            'num_tokens': DEFAULT_PREDICTION_CONFIG['num_tokens'],
            'prefixes': list(TEST_PREFIXES),
        },
        'logging': {'log_file': None},
    }


class ConfigManager:
    """Manages configuration loading and merging for training and prediction."""

    def __init__(self, config_root: str = "config"):
        self.config_root = config_root
        self.trainer_config_dir = os.path.join(config_root, "trainer")

    def load_yaml(self, filepath: str) -> Dict[str, Any]:
        """Load YAML configuration file."""
        try:
            with open(filepath, 'r') as f:
                return yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.debug(f"Config file not found: {filepath}")
            return {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML file {filepath}: {e}")
            return {}

    def merge_configs(self, base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries."""
        merged = base_config.copy()

        for key, value in override_config.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self.merge_configs(merged[key], value)
            else:
                merged[key] = value

        return merged

    def load_trainer_config(self, custom_config: Optional[str] = None) -> Dict[str, Any]:
        """Load trainer configuration: defaults, base file, model file, custom file."""
        config = default_config()

        base_config_path = os.path.join(self.trainer_config_dir, "base_config.yaml")
        config = self.merge_configs(config, self.load_yaml(base_config_path))

        model_config_path = os.path.join(self.trainer_config_dir, "gru_config.yaml")
        config = self.merge_configs(config, self.load_yaml(model_config_path))

        if custom_config:
            if os.path.exists(custom_config):
                config = self.merge_configs(config, self.load_yaml(custom_config))
            else:
                logger.warning(f"Config file not found: {custom_config}")

        return config


class ModelRunner:
    """Main runner class that coordinates training and prediction."""

    def __init__(self, config_root: str = "config"):
        self.config_manager = ConfigManager(config_root)

    def train_model(self, args) -> bool:
        """Train the model, then complete every test prefix."""
        logger.info("Starting training for gru model")

        config = self.config_manager.load_trainer_config(args.config)
        self._override_trainer_config(config, args)

        from gru_lm.trainer import create_trainer

        trainer_kwargs = self._build_trainer_kwargs(config)

        try:
            trainer = create_trainer(**trainer_kwargs)
            history = trainer.train()

            logger.info("Training completed successfully!")
            logger.info(f"Initial loss: {history['initial_loss']:.4f}")
            logger.info(f"Final loss: {history['final_loss']:.4f}")

        except Exception as e:
            logger.error(f"Training failed: {e}")
            return False

        return self.predict_prefixes(trainer, config.get('prediction', {}))

    def predict_prefixes(self, trainer, prediction_config: Dict[str, Any]) -> bool:
        """Complete every configured prefix; per-prefix failures are logged and skipped."""
        from gru_lm.sampler import create_predictor

        try:
            predictor = create_predictor(
                trainer,
                prediction_config={'num_tokens': prediction_config.get('num_tokens', 1)})
            results = predictor.predict_batch(prediction_config.get('prefixes', TEST_PREFIXES))
        except Exception as e:
            logger.error(f"Prediction failed: {e}")
            return False

        failed = [r['prefix'] for r in results if r.get('error')]
        if failed:
            logger.warning(f"{len(failed)} of {len(results)} prefixes could not be completed")
        return True

    def show_config(self, args):
        """Show the merged configuration."""
        config = self.config_manager.load_trainer_config(getattr(args, 'config', None))
        logger.info("Configuration for gru model:")
        logger.info("-" * 50)
        print(yaml.dump(config, default_flow_style=False, indent=2))

    def _override_trainer_config(self, config: Dict[str, Any], args):
        """Override trainer configuration with command line arguments."""
        model_config = config.setdefault('model', {})
        training_config = config.setdefault('training', {})
        data_config = config.setdefault('data', {})
        prediction_config = config.setdefault('prediction', {})

        if args.epochs is not None:
            training_config['epochs'] = args.epochs
        if args.learning_rate is not None:
            training_config['learning_rate'] = args.learning_rate
        if args.report_every is not None:
            training_config['report_every'] = args.report_every
        if args.no_progress:
            training_config['progress_bar'] = False

        if args.vocab_size is not None:
            model_config['vocab_size'] = args.vocab_size
        if args.embedding_size is not None:
            model_config['embedding_dim'] = args.embedding_size
        if args.hidden_size is not None:
            model_config['hidden_dim'] = args.hidden_size
        if args.seed is not None:
            model_config['seed'] = args.seed

        if args.text:
            data_config['text'] = args.text
        if args.prefix:
            prediction_config['prefixes'] = args.prefix
        if args.num_tokens is not None:
            prediction_config['num_tokens'] = args.num_tokens

        if args.log_file:
            config.setdefault('logging', {})['log_file'] = args.log_file

    def _build_trainer_kwargs(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Build kwargs for trainer creation from config."""
        model_config = config.get('model', {})
        kwargs = {
            'text': config.get('data', {}).get('text'),
            'vocab_size': model_config.get('vocab_size', DATA_CONFIG['vocab_size']),
            'embedding_dim': model_config.get('embedding_dim', model_defaults.embedding_dim),
            'hidden_dim': model_config.get('hidden_dim', model_defaults.hidden_dim),
            'seed': model_config.get('seed', model_defaults.seed),
        }

        training_config = config.get('training', {})
        for key in TRAINING_CONFIG:
            if key in training_config:
                kwargs[key] = training_config[key]

        log_file = config.get('logging', {}).get('log_file')
        if log_file:
            kwargs['log_file'] = log_file

        return kwargs


def create_argument_parser():
    """Create the argument parser for the runner script."""
    parser = argparse.ArgumentParser(
        description="GRU Language Model Training and Prediction Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Training command
    train_parser = subparsers.add_parser('train', help='Train the model and complete test prefixes')
    train_parser.add_argument('--config', help='Custom configuration file')
    train_parser.add_argument('--epochs', type=int, help='Number of epochs')
    train_parser.add_argument('--learning-rate', type=float, help='Learning rate')
    train_parser.add_argument('--report-every', type=int, help='Log the loss every N epochs')
    train_parser.add_argument('--vocab-size', type=int, help='Number of hash slots')
    train_parser.add_argument('--embedding-size', type=int, help='Embedding width')
    train_parser.add_argument('--hidden-size', type=int, help='Hidden state width')
    train_parser.add_argument('--seed', type=int, help='Seed for parameter initialisation')
    train_parser.add_argument('--text', help='Training sentence')
    train_parser.add_argument('--prefix', action='append', help='Test prefix (repeatable)')
    train_parser.add_argument('--num-tokens', type=int, help='Words to append to each prefix')
    train_parser.add_argument('--log-file', help='Write a detailed training log to this file')
    train_parser.add_argument('--no-progress', action='store_true', help='Disable the progress bar')

    # Show config command
    config_parser = subparsers.add_parser('show-config', help='Show the merged configuration')
    config_parser.add_argument('--config', help='Custom configuration file')

    return parser


def main(argv=None):
    """Main entry point for the runner script."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    runner = ModelRunner()

    if args.command == 'train':
        success = runner.train_model(args)
    elif args.command == 'show-config':
        runner.show_config(args)
        success = True
    else:
        logger.error(f"Unknown command: {args.command}")
        success = False

    if not success:
        sys.exit(1)


if __name__ == "__main__":
    main()
