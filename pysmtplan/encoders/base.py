class Encoder:
    """
    Interface shared by encoders: build the formula for a bound, check it,
    and read a plan back from a model.
    """

    def encode(self, horizon):
        raise NotImplementedError

    def solve(self):
        raise NotImplementedError

    def extract_plan(self, model, horizon):
        raise NotImplementedError
