"""
Benchmark recurrent video matting latency across backends and resolutions.

Usage - backends:
    $ python benchmark.py --backends onnx-cpu                # ONNX Runtime, single thread
                                     onnx-cpu-parallel       # ONNX Runtime, all cores
                                     onnx-cuda               # ONNX Runtime CUDA
                                     openvino                # OpenVINO CPU
                                     torch-cpu torch-cuda    # TorchScript

Usage - profiles:
    $ python benchmark.py --profiles fast balanced accurate
"""

import argparse
import sys

from easydict import EasyDict as edict

from rvmbench.config import load_config, merge_config
from rvmbench.errors import RvmBenchError
from rvmbench.harness import run_benchmark
from rvmbench.inference.backendType import BackendType
from rvmbench.inference.model.factory import make_backend
from rvmbench.profiles import PROFILES, profile_from_config, register_profile
from rvmbench.utils import get_logger, setup_logging


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Measure steady-state per-frame latency of a recurrent matting model."
    )

    # Config file
    parser.add_argument(
        "--config", type=str, default=None, help="Path to config.yml/.json"
    )

    # Input / output
    parser.add_argument(
        "--image", type=str, default=None, help="Input image reused for every frame."
    )
    parser.add_argument(
        "--output_dir",
        type=str,
        default=None,
        help="Directory for output_<backend>_<profile>.png matte images.",
    )

    # Model parameters
    parser.add_argument(
        "--model_dir",
        type=str,
        default=None,
        help="Directory containing the exported ONNX / TorchScript models.",
    )
    parser.add_argument(
        "--onnx_model", type=str, default=None, help="ONNX model file name."
    )
    parser.add_argument(
        "--torchscript_model",
        type=str,
        default=None,
        help="TorchScript model file name.",
    )

    # Benchmark parameters
    parser.add_argument(
        "--backends",
        nargs="+",
        default=None,
        choices=[b.value for b in BackendType],
        help="Backends to benchmark.",
    )
    parser.add_argument(
        "--profiles",
        nargs="+",
        default=None,
        help=f"Resolution profiles to benchmark. Built-in: {', '.join(PROFILES)}",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=None,
        help="Measured iterations per combination (one extra warm-up is always run).",
    )
    parser.add_argument(
        "--downsample_ratio",
        type=float,
        default=None,
        help="Value fed to the model's downsample_ratio input.",
    )
    parser.add_argument(
        "--num_threads",
        type=int,
        default=None,
        help="Thread count for the parallel CPU backends.",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        default=None,
        help="List available backends and profiles and exit.",
    )

    # Logging parameters
    parser.add_argument(
        "--log_level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level.",
    )
    parser.add_argument(
        "--log_to_file",
        action="store_true",
        default=None,
        help="Also write the log to logs/rvmbench_<timestamp>.log.",
    )

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    config = edict(merge_config(args, load_config(args.config)))

    # Setup logging first
    setup_logging(
        enabled=True, log_level=config.log_level, log_to_file=config.log_to_file
    )
    logger = get_logger("rvmbench.benchmark")

    for name, entry in (config.get("custom_profiles") or {}).items():
        register_profile(profile_from_config(name, entry))

    if config.get("list"):
        print("Backends:", ", ".join(b.value for b in BackendType))
        for profile in PROFILES.values():
            print(
                f"Profile {profile.name}: {profile.source_width}x{profile.source_height}, "
                f"scales {profile.scale_sizes}"
            )
        return 0

    logger.info(f"Final config: {dict(config)}")

    def backend_factory(name):
        return make_backend(
            name,
            config.model_dir,
            onnx_model=config.onnx_model,
            torchscript_model=config.torchscript_model,
            num_threads=config.num_threads,
        )

    summary = run_benchmark(
        config.backends,
        config.profiles,
        config.image,
        backend_factory,
        iterations=config.iterations,
        output_dir=config.output_dir,
        downsample_ratio=config.downsample_ratio,
    )
    return 0 if summary.ok else 1


if __name__ == "__main__":
    try:
        exit_code = main()
        sys.exit(exit_code)
    except KeyboardInterrupt:
        logger = get_logger("rvmbench.benchmark")
        logger.info("Process interrupted by user")
        sys.exit(1)
    except (RvmBenchError, FileNotFoundError, ValueError) as e:
        logger = get_logger("rvmbench.benchmark")
        logger.error(f"Benchmark failed: {e}", exc_info=True)
        sys.exit(1)
