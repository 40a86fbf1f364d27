'''Usage: train_maxent.py [options] TRAIN PENALTY

Train a maximum-entropy classifier on a CSV table and write its weights.

Options:
  --heldout=FILE       CSV table evaluated after every iteration.
  --label=NAME         Name of the label column [default: label].
  --regularizer=NAME   Either l1 or l2 [default: l1].
  --max-iter=N         Maximum number of iterations [default: 300].
  --output=FILE        Where to write the weight table [default: weights.csv].
  --verbose            Log every objective evaluation.
'''

import logging

import pandas as pd
from docopt import docopt

import dataprep
from learn import learn_weights


def main(argv=None):
    arguments = docopt(__doc__, argv=argv)

    level = logging.DEBUG if arguments['--verbose'] else logging.INFO
    logging.basicConfig(level=level)

    penalty = float(arguments['PENALTY'])
    label = arguments['--label']

    train = dataprep.load_dataset(arguments['TRAIN'], label)
    heldout = None
    if arguments['--heldout'] is not None:
        test = dataprep.load_dataset(arguments['--heldout'], label, train.classes)
        if test.feature_names != train.feature_names:
            raise ValueError('Held-out features do not match training features')
        heldout = (test.X, test.y)

    model = learn_weights(train.X, train.y, penalty,
                          regularizer=arguments['--regularizer'],
                          heldout=heldout,
                          max_iterations=int(arguments['--max-iter']))

    tbl = pd.DataFrame(model.weights, index=train.classes, columns=train.feature_names)
    tbl.index.name = label
    tbl.to_csv(arguments['--output'])

    nz = (tbl.values != 0).sum()
    logging.info('Wrote {} weights ({} non-zero) to {}'.format(tbl.size, nz, arguments['--output']))

    return 0


if __name__ == '__main__':
    raise SystemExit(main())
