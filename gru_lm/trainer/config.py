# data config
DATA_CONFIG = {
    "text": "What did the bartender say to the jumper cables? You better not try to start anything.",
    "vocab_size": 31,
}

# training config
TRAINING_CONFIG = {
    "learning_rate": 0.01,
    "epochs": 500,
    "report_every": 50,  # Loss is logged every N epochs and after the last one
    "rmsprop_decay": 0.9,
    "rmsprop_eps": 1e-8,
    "grad_clip": None,  # Element-wise gradient clamp, disabled by default
    "progress_bar": True,
}
