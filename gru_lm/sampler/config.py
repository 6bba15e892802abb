# Prediction Configuration

# Default prediction configuration
DEFAULT_PREDICTION_CONFIG = {
    # Decoding strategy: only arg-max decoding is supported
    'decoding_strategy': 'greedy',

    # Number of tokens appended to each prefix
    'num_tokens': 1,

    # Log each prediction as it is made
    'log_predictions': True,
}

# Test prefixes completed after training on the default sentence
TEST_PREFIXES = [
    "the bartender say to the",
    "the jumper",
    "You better not",
    "try to start",
]
